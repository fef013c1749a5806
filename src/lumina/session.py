"""
Editor Session

Builds the session-wide services once and hands the same instances to every
consumer: one circuit breaker, one invoker, one scheduler per workspace.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .config import Settings, settings as default_settings
from .exporter import BatchExporter
from .presets import PresetStore
from .vision.assistant import AIAssistant
from .vision.client import GeminiVisionClient
from .vision.resilience import QuotaCircuitBreaker, ResilientInvoker
from .vision.scheduler import PrivacyDetectionScheduler
from .workspace import Workspace


@dataclass
class EditorSession:
    """All services of one editing session."""

    settings: Settings
    workspace: Workspace
    client: GeminiVisionClient
    breaker: QuotaCircuitBreaker
    invoker: ResilientInvoker
    scheduler: PrivacyDetectionScheduler
    assistant: AIAssistant
    exporter: BatchExporter
    presets: PresetStore

    async def aclose(self) -> None:
        await self.client.aclose()


def build_session(
    config: Optional[Settings] = None,
    client: Optional[GeminiVisionClient] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_status: Optional[Callable[[str], None]] = None,
) -> EditorSession:
    """
    Wire up a session.

    Args:
        config: Settings to use (defaults to the global settings)
        client: Vision client override
        clock: Time source for the circuit breaker
        sleep: Delay function for backoff, spacing and debounce
        on_status: Receives user-facing status messages from background work
    """
    config = config or default_settings
    config.ensure_directories()

    workspace = Workspace()
    client = client or GeminiVisionClient(
        api_key=config.gemini_api_key,
        model=config.vision_model,
        base_url=config.vision_base_url,
        timeout=config.vision_timeout,
    )
    breaker = QuotaCircuitBreaker(default_cooldown=config.quota_cooldown_seconds, clock=clock)
    invoker = ResilientInvoker(
        max_retries=config.ai_max_retries,
        base_delay=config.ai_retry_base_delay,
        sleep=sleep,
    )
    scheduler = PrivacyDetectionScheduler(
        workspace,
        client,
        invoker,
        breaker,
        debounce=config.detection_debounce_seconds,
        spacing=config.detection_spacing_seconds,
        sleep=sleep,
        on_status=on_status,
    )
    workspace.subscribe(scheduler.notify_changed)

    return EditorSession(
        settings=config,
        workspace=workspace,
        client=client,
        breaker=breaker,
        invoker=invoker,
        scheduler=scheduler,
        assistant=AIAssistant(workspace, client, invoker, breaker),
        exporter=BatchExporter(
            prefix=config.export_prefix,
            archive_name=config.export_archive_name,
            fmt=config.export_format,
            quality=config.export_quality,
        ),
        presets=PresetStore(config.presets_file),
    )
