"""Logging setup and the yt-dlp logger adapter."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """(Re)configure root logging; the last call wins."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
        force=True,
    )
    logging.getLogger("yt_dlp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


class ResolverLogger:
    """Logger handed to yt-dlp that tags messages with the attempt context."""

    UNAVAILABLE_FRAGMENTS = (
        "video unavailable",
        "video is unavailable",
        "content isn't available",
        "content is not available",
        "this video is private",
        "the uploader has not made this video available",
    )

    def __init__(
        self,
        client: Optional[str] = None,
        video_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.video_id = video_id
        self._logger = logger or logging.getLogger("echo_proxy.yt_dlp")

    def _format_with_context(self, message: str) -> str:
        context_parts = []
        if self.client:
            context_parts.append(f"client={self.client}")
        if self.video_id:
            context_parts.append(f"video_id={self.video_id}")
        if context_parts:
            return f"[{' '.join(context_parts)}] {message}"
        return message

    def _is_expected_unavailable_error(self, lowered: str) -> bool:
        return any(fragment in lowered for fragment in self.UNAVAILABLE_FRAGMENTS)

    @staticmethod
    def _ensure_text(message) -> str:
        if isinstance(message, bytes):
            return message.decode("utf-8", "ignore")
        return str(message)

    def debug(self, message) -> None:  # yt-dlp calls this
        self._logger.debug(self._format_with_context(self._ensure_text(message)))

    def info(self, message) -> None:
        self._logger.info(self._format_with_context(self._ensure_text(message)))

    def warning(self, message) -> None:
        text = self._ensure_text(message)
        # Unavailable content is reported by the caller once it gives up
        if not self._is_expected_unavailable_error(text.lower()):
            self._logger.warning(self._format_with_context(text))

    def error(self, message) -> None:
        self._logger.error(self._format_with_context(self._ensure_text(message)))
