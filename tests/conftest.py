from pathlib import Path
from unittest.mock import MagicMock

import pytest

from storyweaver.engine import StoryEngine
from storyweaver.gateway import ContinuationResult, OpeningResult, WordDefinition
from storyweaver.profiles import ProfileStore
from storyweaver.providers.text import TextGenerationResult
from storyweaver.settings import ENV_VAR_MAPPING


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real config file, data directory and API keys."""
    monkeypatch.setattr("storyweaver.settings.CONFIG_PATH", tmp_path / "config" / "config.json")
    data_dir = tmp_path / "data"
    monkeypatch.setenv("STORYWEAVER_DATA_DIR", str(data_dir))
    for env_var in ENV_VAR_MAPPING.values():
        monkeypatch.delenv(env_var, raising=False)
    return data_dir


@pytest.fixture
def data_dir(isolated_environment: Path) -> Path:
    """The per-test data directory holding both collections."""
    return isolated_environment


@pytest.fixture
def opening() -> OpeningResult:
    """A well-formed opening chapter."""
    return OpeningResult(
        opening_text="Luna the dragon woke up in the Crystal Caves. Two tunnels glowed ahead.",
        choice_a="Go left",
        choice_b="Go right",
    )


@pytest.fixture
def continuation() -> ContinuationResult:
    """A well-formed middle chapter."""
    return ContinuationResult(
        next_text="You found a cave.",
        choice_a="Enter",
        choice_b="Leave",
    )


@pytest.fixture
def mock_gateway(opening: OpeningResult, continuation: ContinuationResult) -> MagicMock:
    """A narrative gateway that never calls a provider."""
    gateway = MagicMock()
    gateway.generate_opening.return_value = opening
    gateway.generate_next.return_value = continuation
    gateway.define_word.return_value = WordDefinition(definition="A big, dark hole in a hill.", pronunciation="kayv")
    return gateway


@pytest.fixture
def profile_store(data_dir: Path) -> ProfileStore:
    """Profile store over the per-test data directory."""
    return ProfileStore(base_dir=data_dir)


@pytest.fixture
def engine(mock_gateway: MagicMock, profile_store: ProfileStore, data_dir: Path) -> StoryEngine:
    """Story engine wired to the mock gateway."""
    return StoryEngine(mock_gateway, profiles=profile_store, base_dir=data_dir)


@pytest.fixture
def fake_provider() -> MagicMock:
    """A text provider whose reply each test sets through ``reply``."""
    provider = MagicMock()
    provider.provider_name = "Fake"

    def reply(content: str) -> None:
        provider.generate.return_value = TextGenerationResult(content=content, provider="fake", model="fake-1")

    provider.reply = reply
    reply('{"opening_text": "Once upon a time.", "choice_a": "Go left", "choice_b": "Go right"}')
    return provider
