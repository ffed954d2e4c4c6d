"""Shared fixtures for saber-code tests."""

import logging
import os
from unittest.mock import MagicMock

import pytest

import saber_code.config as config_module
import saber_code.logger as logger_module
from saber_code.agent import Agent
from saber_code.config import Config
from saber_code.llm import BackendResponse, StreamChunk


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep tests away from the real ~/.saber-code and SABER_* environment."""
    home = tmp_path_factory.mktemp("saber-home")
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    monkeypatch.setattr(logger_module, "DEFAULT_LOG_FILE", home / "logs" / "agent.log")
    for var in list(os.environ):
        if var.startswith("SABER_") or var == "OLLAMA_HOST":
            monkeypatch.delenv(var, raising=False)
    yield home
    project_logger = logging.getLogger("saber_code")
    for handler in list(project_logger.handlers):
        project_logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def config(tmp_path):
    return Config(root_path=tmp_path.resolve())


class FakeBackend:
    """Scripted model backend: pops queued replies, records every request."""

    def __init__(self, replies=None, chunks=None):
        self.replies = list(replies or [])
        self.chunks = list(chunks or [])
        self.requests = []

    def generate(self, messages, model=None, **options):
        self.requests.append(messages)
        content = self.replies.pop(0) if self.replies else ""
        return BackendResponse(content=content, model=model or "fake", done=True)

    def stream(self, messages, model=None, **options):
        self.requests.append(messages)
        for text in self.chunks:
            if isinstance(text, Exception):
                raise text
            yield StreamChunk(chunk=text, done=False)
        yield StreamChunk(chunk="", done=True)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def agent(config, backend):
    return Agent(config, backend=backend)


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    return c
