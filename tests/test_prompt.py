"""Tests for credential prompting."""

from unittest.mock import patch

import pytest

from redis_doctor.adapter import Credentials, parse_target
from redis_doctor.prompt import initial_credentials, prompt_credentials


class TestInitialCredentials:
    """Tests for first-attempt credential selection."""

    def test_non_interactive_never_prompts(self):
        with patch("redis_doctor.prompt.typer.prompt") as prompt:
            credentials = initial_credentials(parse_target("redis://h:1"), interactive=False)

        assert credentials == Credentials()
        prompt.assert_not_called()

    def test_url_password_skips_prompt(self):
        with patch("redis_doctor.prompt.typer.prompt") as prompt:
            credentials = initial_credentials(parse_target("redis://admin:pw@h:1"))

        assert credentials == Credentials()
        prompt.assert_not_called()

    def test_url_username_asks_only_password(self):
        with patch("redis_doctor.prompt.typer.prompt", return_value="secret") as prompt:
            credentials = initial_credentials(parse_target("redis://admin@h:1"))

        assert credentials == Credentials(username="admin", password="secret")
        assert prompt.call_count == 1
        assert prompt.call_args.kwargs["hide_input"] is True

    def test_bare_url_asks_both(self):
        with patch("redis_doctor.prompt.typer.prompt", side_effect=["", ""]) as prompt:
            credentials = initial_credentials(parse_target("redis://h:1"))

        # Empty answers mean "no auth"
        assert credentials == Credentials()
        assert prompt.call_count == 2


class TestPromptCredentials:
    @pytest.mark.asyncio
    async def test_async_prompt_runs_in_thread(self):
        with patch("redis_doctor.prompt.typer.prompt", side_effect=["ops", "pw"]):
            credentials = await prompt_credentials()

        assert credentials == Credentials(username="ops", password="pw")
