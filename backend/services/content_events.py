"""Content-reload notifications between the content pipeline and the chat host."""
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from models.chunk import ChatContent

logger = logging.getLogger(__name__)

# Type alias for reload subscribers (plain or async)
ContentCallback = Callable[[ChatContent], Union[None, Awaitable[None]]]


class ContentEventEmitter:
    """
    Fan-out of freshly loaded corpora to subscribers.

    Owned by the hosting process and handed to the plugin, so each host (and
    each test) gets its own subscriber list.
    """

    def __init__(self):
        self._subscribers: List[ContentCallback] = []
        self.last_content: Optional[ChatContent] = None

    def subscribe(self, callback: ContentCallback) -> Callable[[], None]:
        """
        Register `callback` for every future reload.

        Returns:
            A function that removes the subscription (safe to call twice)
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def emit(self, content: ChatContent) -> None:
        """Deliver `content` to every subscriber in subscription order.

        A subscriber that raises is logged and the remaining ones still run.
        """
        self.last_content = content
        for callback in list(self._subscribers):
            try:
                result = callback(content)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Content reload subscriber {callback!r} failed: {e}", exc_info=True)

        logger.info(f"Emitted content reload ({content.total_chunks} chunks) to {self.subscriber_count} subscribers")
