from __future__ import annotations

from unittest.mock import Mock, patch

from petro_import.services.progress import BatchProgress, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


def test_tqdm_created_on_tty():
    with patch("petro_import.services.progress.is_tty_enabled", return_value=True), patch(
        "petro_import.services.progress.tqdm"
    ) as mock_tqdm:
        progress = BatchProgress(3, description="Importing rocks")
        assert progress.enabled is True
        mock_tqdm.assert_called_once_with(
            total=3,
            desc="Importing rocks",
            unit="batch",
            leave=True,
            position=0,
            ncols=80,
            ascii=True,
        )


def test_no_bar_without_tty():
    with patch("petro_import.services.progress.is_tty_enabled", return_value=False):
        progress = BatchProgress(3)
        assert progress.enabled is False
        assert progress.pbar is None
        progress.advance(success=False, written=0)
        assert (progress.done, progress.failed) == (1, 1)


def test_no_bar_for_zero_batches():
    with patch("petro_import.services.progress.is_tty_enabled", return_value=True), patch(
        "petro_import.services.progress.tqdm"
    ) as mock_tqdm:
        assert BatchProgress(0).pbar is None
        mock_tqdm.assert_not_called()


def test_advance_updates_bar_and_postfix():
    bar = Mock()
    with patch("petro_import.services.progress.is_tty_enabled", return_value=True), patch(
        "petro_import.services.progress.tqdm", return_value=bar
    ):
        with BatchProgress(2) as progress:
            progress.advance(success=True, written=50)
            progress.advance(success=False, written=0)
        bar.update.assert_called_with(1)
        bar.set_postfix.assert_called_with(rows=50, failed_batches=1)
        bar.close.assert_called_once()
        assert progress.pbar is None
