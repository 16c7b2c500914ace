from unittest.mock import MagicMock, patch

import structlog

from rendezvous.utils.errors import NotFoundError
from rendezvous.utils.logging import (
    NOISY_LOGGERS,
    _add_app_context,
    bind_viewer,
    configure_logging,
    get_logger,
    log_error,
    unbind_viewer,
    viewer_context,
)


@patch("rendezvous.utils.logging.structlog")
@patch("rendezvous.utils.logging.logging")
@patch("rendezvous.utils.logging.settings")
def test_configure_logging_development(mock_settings, mock_logging, mock_structlog):
    mock_settings.LOG_LEVEL = "DEBUG"
    mock_settings.ENVIRONMENT = "development"

    configure_logging()

    mock_logging.basicConfig.assert_called_once()
    _args, kwargs = mock_logging.basicConfig.call_args
    assert kwargs["level"] == mock_logging.DEBUG

    mock_structlog.configure.assert_called_once()
    processors = mock_structlog.configure.call_args[1]["processors"]
    assert mock_structlog.dev.ConsoleRenderer.return_value in processors


@patch("rendezvous.utils.logging.structlog")
@patch("rendezvous.utils.logging.logging")
@patch("rendezvous.utils.logging.settings")
def test_configure_logging_production(mock_settings, mock_logging, mock_structlog):
    mock_settings.LOG_LEVEL = "INFO"
    mock_settings.ENVIRONMENT = "production"
    mock_settings.DEBUG = False

    configure_logging()

    processors = mock_structlog.configure.call_args[1]["processors"]
    assert mock_structlog.processors.JSONRenderer.return_value in processors
    assert mock_structlog.contextvars.merge_contextvars in processors
    assert _add_app_context in processors


@patch("rendezvous.utils.logging.structlog")
def test_get_logger(mock_structlog):
    mock_logger = MagicMock()
    mock_structlog.get_logger.return_value = mock_logger

    logger = get_logger("test_logger", match_id="m1")

    mock_structlog.get_logger.assert_called_with("test_logger")
    mock_logger.bind.assert_called_with(match_id="m1")
    assert logger == mock_logger.bind.return_value


def test_bind_and_unbind_viewer():
    bind_viewer("alice")
    assert structlog.contextvars.get_contextvars()["viewer_id"] == "alice"

    unbind_viewer()
    assert "viewer_id" not in structlog.contextvars.get_contextvars()


def test_log_error():
    mock_logger = MagicMock()
    error = ValueError("test error")
    extra = {"match_id": "m1"}

    log_error(mock_logger, error, "something went wrong", extra)

    mock_logger.error.assert_called_once()
    args, kwargs = mock_logger.error.call_args
    assert args[0] == "something went wrong"
    assert kwargs["match_id"] == "m1"
    assert kwargs["error_type"] == "ValueError"
    assert kwargs["error_message"] == "test error"
    assert kwargs["exc_info"] == error
    assert extra == {"match_id": "m1"}


def test_log_error_with_details():
    mock_logger = MagicMock()
    error = NotFoundError("missing", details={"match_id": "m1"})

    log_error(mock_logger, error)

    args, kwargs = mock_logger.error.call_args
    assert args[0] == "An error occurred"
    assert kwargs["error_type"] == "NotFoundError"
    assert kwargs["error_details"] == {"match_id": "m1"}
    assert kwargs["error_status"] == 404


@patch("rendezvous.utils.logging.logging")
@patch("rendezvous.utils.logging.settings")
def test_configure_logging_quiets_library_loggers(mock_settings, mock_logging):
    mock_settings.LOG_LEVEL = "INFO"
    mock_settings.ENVIRONMENT = "production"
    mock_settings.DEBUG = False

    with patch("rendezvous.utils.logging.structlog"):
        configure_logging()

    quieted = [c.args[0] for c in mock_logging.getLogger.call_args_list]
    assert quieted == list(NOISY_LOGGERS)


@patch("rendezvous.utils.logging.settings")
def test_app_context_does_not_override_event_values(mock_settings):
    mock_settings.APP_NAME = "Rendezvous"
    mock_settings.ENVIRONMENT = "test"

    event = _add_app_context(None, "info", {"event": "hello", "environment": "custom"})

    assert event == {"event": "hello", "app": "Rendezvous", "environment": "custom"}


def test_viewer_context_is_scoped():
    with viewer_context("bob", match_id="m1"):
        bound = structlog.contextvars.get_contextvars()
        assert bound["viewer_id"] == "bob"
        assert bound["match_id"] == "m1"

    assert "viewer_id" not in structlog.contextvars.get_contextvars()
