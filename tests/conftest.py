# ──────────────────────────────────────────────────────────────────────────
# tests/conftest.py
# --------------------------------------------------------------------------
"""
Global pytest fixtures & CLI options for the remediation tests.
Unit tests run against the in-memory chain in ``chain_fakes``; the
integration test needs an archive node:

    pytest -m integration tests/test_history_integration.py \
           --url wss://<ARCHIVE-NODE>/ws
"""
import pytest

from chain_fakes import FakeSubstrate, Signer


def pytest_addoption(parser: pytest.Parser) -> None:
    """Expose `--url` on the pytest command line."""
    parser.addoption(
        "--url",
        action="store",
        default=None,
        help="Websocket URL of a Subspace archive node for integration tests.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: needs a live archive node (--url)")


@pytest.fixture
def chain() -> FakeSubstrate:
    return FakeSubstrate()


@pytest.fixture
def signer() -> Signer:
    return Signer()
