"""One-shot and streaming Messages pipeline.

Shared by the HTTP routes and the batch engine: resolve the model, hand web
search turns to the orchestrator, otherwise translate the request, call the
chat backend and translate the answer back.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.backend import BackendClient
from ..core.exceptions import InvalidRequestError, ProxyError
from ..core.models import ModelManager, ModelMapping
from ..core.router import route_model
from ..core.sse import format_error_event
from ..core.tokenizer import CharacterTokenizer, Tokenizer, count_request_tokens
from ..types import Message
from ..websearch.orchestrator import WebSearchOrchestrator
from .stream_adapter import ChatToMessagesStreamAdapter, StreamPacing
from .thinking import KeywordThinkingStrategy, ThinkingStrategy, thinking_requested
from .translator import chat_completion_to_messages, messages_to_chat_completions, new_message_id

logger = logging.getLogger("msgbridge")


class MessagesService:
    def __init__(
        self,
        backend: BackendClient,
        models: ModelManager,
        search: Optional[WebSearchOrchestrator] = None,
        tokenizer: Optional[Tokenizer] = None,
        thinking: Optional[ThinkingStrategy] = None,
        pacing: Optional[StreamPacing] = None,
        explanations: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.backend = backend
        self.models = models
        self.search = search
        self.tokenizer = tokenizer or CharacterTokenizer()
        self.thinking = thinking or KeywordThinkingStrategy()
        self.pacing = pacing or StreamPacing()
        self.explanations = explanations

    def resolve_model(self, request: Mapping[str, Any], req_id: str = "-") -> ModelMapping:
        """Route the request and look up its model mapping.

        Raises:
            InvalidRequestError: The (routed) model has no mapping.
        """
        model = str(request.get("model") or "")
        policy = self.models.router_policy
        if policy is not None:
            model = route_model(request, policy, self.tokenizer, req_id)

        mapping = self.models.get(model)
        if mapping is None:
            available = ", ".join(self.models.names())
            raise InvalidRequestError(
                f"Model {model} is not supported. Available models: {available}",
                code="model_not_supported",
            )
        logger.debug(f"[{req_id}] Resolved {request.get('model')} -> {mapping.source_model} -> {mapping.target_model}")
        return mapping

    def _thinking_for(self, request: Mapping[str, Any]) -> Optional[ThinkingStrategy]:
        return self.thinking if thinking_requested(request) else None

    async def create_message(
        self,
        request: Mapping[str, Any],
        mapping: ModelMapping,
        req_id: str = "-",
    ) -> Message:
        request = {**request, "model": mapping.source_model}

        if self.search is not None:
            context = self.search.detect(request, req_id)
            if context.has_web_search:
                logger.info(f"[{req_id}] Handling web search (tool result: {context.is_tool_result})")
                return await self.search.handle(request, mapping, context, req_id)

        openai_payload = messages_to_chat_completions(request, mapping)
        logger.debug(
            f"[{req_id}] Translated to OpenAI format: model={openai_payload.get('model')}, "
            f"messages_count={len(openai_payload.get('messages', []))}"
        )
        response = await self.backend.create_chat_completion(openai_payload)
        return chat_completion_to_messages(
            response,
            mapping.source_model,
            thinking=self._thinking_for(request),
        )

    async def stream_message(
        self,
        request: Mapping[str, Any],
        mapping: ModelMapping,
        req_id: str = "-",
    ) -> AsyncIterator[bytes]:
        """Yield Messages SSE events; failures become an in-band error event."""
        request = {**request, "model": mapping.source_model}
        try:
            if self.search is not None:
                context = self.search.detect(request, req_id)
                if context.has_web_search:
                    logger.info(f"[{req_id}] Streaming web search (tool result: {context.is_tool_result})")
                    async for event in self.search.stream(request, mapping, context, self.pacing, req_id):
                        yield event
                    return

            openai_payload = messages_to_chat_completions(request, mapping)
            adapter = ChatToMessagesStreamAdapter(
                new_message_id(),
                mapping.source_model,
                explanations=self.explanations,
                pacing=self.pacing,
            )
            chunks = self.backend.stream_chat_completion(openai_payload)
            async for event in adapter.adapt_stream(chunks):
                yield event
            logger.info(f"[{req_id}] Stream finished: stop_reason={adapter.stop_reason}")
        except ProxyError as exc:
            logger.error(f"[{req_id}] Streaming failed: {exc.message}")
            yield format_error_event(exc.message, "api_error")
        except Exception as exc:
            logger.error(f"[{req_id}] Streaming failed: {exc}", exc_info=True)
            yield format_error_event(str(exc) or "Stream processing error", "api_error")

    def count_tokens(self, request: Mapping[str, Any]) -> dict[str, int]:
        if self.models.get(str(request.get("model") or "")) is None:
            raise InvalidRequestError(f"Model {request.get('model')} is not supported")
        total = count_request_tokens(
            request.get("messages") or [],
            request.get("system"),
            request.get("tools") or [],
            self.tokenizer,
        )
        return {"input_tokens": total}
