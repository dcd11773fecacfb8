from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from config.settings import Settings, get_settings
from relay.core.memory import MemoryStore
from relay.core.prompt import get_system_prompt
from relay.core.storage import JsonFileStore
from relay.errors import UpstreamError, UpstreamProtocolError
from relay.streaming.decoder import FrameDecoder
from relay.streaming.parser import StreamCompleted, TextDelta, UpstreamEventParser
from relay.streaming.sse import encode_completed, encode_content, encode_error, encode_started
from relay.upstream import CompletionClient


logger = logging.getLogger(__name__)

DisconnectProbe = Callable[[], Awaitable[bool]]


class ChatRelay:
    """Relays one query at a time to the upstream and re-emits it as SSE frames."""

    def __init__(self, memory: MemoryStore, client: CompletionClient):
        self.memory = memory
        self.client = client

    async def stream_reply(
        self, query: str, is_disconnected: Optional[DisconnectProbe] = None
    ) -> AsyncIterator[str]:
        """Yield SSE frames for ``query``.

        Always starts with ``started`` and, unless the client goes away,
        ends with exactly one of ``completed`` or ``error``. Memory is only
        touched after the upstream signals completion.
        """
        yield encode_started()

        decoder = FrameDecoder()
        parser = UpstreamEventParser()
        chunks: List[str] = []

        try:
            turns = self.memory.compose_context(query)
            logger.info(
                "Relaying query: query_len=%s context_turns=%s", len(query), len(turns)
            )

            async with aclosing(self.client.stream_bytes(turns)) as upstream:
                async with aclosing(decoder.iter_lines(upstream)) as lines:
                    async for line in lines:
                        event = parser.feed(line)
                        if isinstance(event, StreamCompleted):
                            break
                        if not isinstance(event, TextDelta):
                            continue

                        chunks.append(event.text)
                        yield encode_content(event.text)
                        if is_disconnected is not None and await is_disconnected():
                            logger.info("Client disconnected after %s deltas", len(chunks))
                            return

            if not parser.finished:
                raise UpstreamProtocolError("上游响应在完成信号前结束")

            reply = "".join(chunks)
            # The long-term file write blocks, so it runs off the event loop.
            promoted = await asyncio.to_thread(self.memory.record_exchange, query, reply)
            logger.info(
                "Completed reply: deltas=%s chars=%s promoted=%s",
                len(chunks),
                len(reply),
                promoted,
            )
        except (asyncio.CancelledError, GeneratorExit):
            logger.info("Client disconnected after %s deltas", len(chunks))
            raise
        except UpstreamError as exc:
            parser.abort(str(exc))
            logger.error("调用API时出错: %s", exc)
            yield encode_error(f"发生错误: {exc}")
            return
        except Exception as exc:
            parser.abort(str(exc))
            logger.exception("Relay failed: %s", exc)
            yield encode_error(f"发生错误: {exc}")
            return

        yield encode_completed()

    async def aclose(self) -> None:
        await self.client.aclose()


def build_relay(settings: Optional[Settings] = None) -> ChatRelay:
    settings = settings or get_settings()
    if not settings.model_name:
        logger.warning("MODEL_NAME not set; upstream requests will omit a model")
    if not settings.ark_api_key:
        logger.warning("ARK_API_KEY not set; upstream requests are unauthenticated")

    memory = MemoryStore(
        store=JsonFileStore(settings.memory_file),
        system_prompt=get_system_prompt(settings),
        max_history_length=settings.max_history_length,
    )
    client = CompletionClient(
        base_url=settings.api_base_url,
        model=settings.model_name,
        api_key=settings.ark_api_key,
        timeout=settings.request_timeout,
    )
    return ChatRelay(memory=memory, client=client)
