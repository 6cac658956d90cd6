import logging

from builder_client import logger as client_log


def test_init_logging_writes_to_env_dir(tmp_path):
    path = client_log.init_logging(level="DEBUG")
    assert path == tmp_path / "logs" / "builder_client.log"

    client_log.log_command("Connect(p0, p1, #ffffff, 2)", sent=True, original='Connect(p0, p1, "Material 1")')
    client_log.log_command("hideindexes", sent=False)
    logging.getLogger("builder_client.world").warning("Dropping malformed snapshot")
    for handler in client_log.get_logger().handlers:
        handler.flush()

    text = path.read_text(encoding="utf-8")
    assert "CMD NET | Connect(p0, p1, #ffffff, 2) | rewritten from: Connect(p0, p1, \"Material 1\")" in text
    assert "CMD LOCAL | hideindexes" in text
    assert "Dropping malformed snapshot" in text


def test_init_logging_replaces_handlers(tmp_path):
    client_log.init_logging(log_dir=str(tmp_path / "a"))
    client_log.init_logging(log_dir=str(tmp_path / "b"), console=True)
    handlers = client_log.get_logger().handlers
    assert len(handlers) == 2
    assert client_log.get_log_file_path() == str(tmp_path / "b" / "builder_client.log")
