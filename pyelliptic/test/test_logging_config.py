import logging

from pyelliptic.logging_config import setup_logging


def test_setup_logging(tmp_path, capsys):
    log_file = tmp_path / 'solve.log'
    logger = setup_logging(logging.DEBUG, log_file=str(log_file))
    try:
        logging.getLogger('pyelliptic.solvers').debug('progress')
        assert len(logger.handlers) == 2

        # handlers of an earlier call are replaced
        setup_logging(logging.INFO)
        assert len(logger.handlers) == 1
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    assert 'progress' in capsys.readouterr().out
    assert 'pyelliptic.solvers - DEBUG - progress' in log_file.read_text()
