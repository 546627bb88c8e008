"""Provider factory helpers for store, script, speech, video, and relay collaborators.

Responsibilities:
- Build concrete provider clients from resolved runtime configuration.
- Select the record store once at startup (Supabase with local fallback, or
  local only).
- Assemble the upload relay host chain in its fixed fallback order.
- Keep the orchestrator independent from concrete class construction.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from .config import ChaptercastConfig, ProviderRuntimeConfig
from .pipeline.orchestrator import ChapterPipeline
from .providers.heygen import HeyGenClient
from .providers.script_writer import ScriptWriter
from .providers.speech import SpeechSynthesizer
from .relay.hosts import FileIoHost, SupabaseBucketHost, TmpFilesHost, UploadHost, ZeroXZeroHost
from .relay.publisher import UploadRelay
from .store.artifacts import ArtifactStore
from .store.backends import FallbackStore, LocalStore, MonotonicClock, RecordStore, RemoteStore
from .telemetry.logger import RunLogger, log_event


class ProviderFactory:
    """Factory for provider-backed collaborators used by the pipeline."""

    @staticmethod
    def create_record_store(
        runtime: ProviderRuntimeConfig,
        data_dir: Path,
        clock: MonotonicClock | None = None,
    ) -> tuple[RecordStore, RemoteStore | None]:
        """Create the record backend and return it with the remote store, if any."""

        local = LocalStore(root=data_dir / "store", clock=clock)
        if not runtime.remote_store_enabled:
            log_event("INFO", "store", "selected", backend="local")
            return local, None

        remote = RemoteStore.from_credentials(
            runtime.supabase_url or "", runtime.supabase_key or "", clock=clock
        )
        log_event("INFO", "store", "selected", backend="supabase")
        return FallbackStore(remote, local), remote

    @staticmethod
    def create_script_writer(runtime: ProviderRuntimeConfig) -> ScriptWriter:
        """Create the OpenAI-backed script writer."""

        return ScriptWriter(
            model=runtime.model_script,
            chapter_model=runtime.model_chapters,
            api_key=runtime.openai_api_key,
        )

    @staticmethod
    def create_speech_synthesizer(
        runtime: ProviderRuntimeConfig, scratch_dir: Path
    ) -> SpeechSynthesizer:
        """Create the ElevenLabs-backed speech synthesizer."""

        return SpeechSynthesizer(
            model=runtime.tts_model,
            api_key=runtime.elevenlabs_api_key,
            scratch_dir=scratch_dir,
        )

    @staticmethod
    def create_avatar_provider(runtime: ProviderRuntimeConfig) -> HeyGenClient:
        """Create the HeyGen avatar video client."""

        return HeyGenClient(api_key=runtime.heygen_api_key)

    @staticmethod
    def create_upload_relay(remote: RemoteStore | None, bucket: str) -> UploadRelay:
        """Create the relay: Supabase bucket first when configured, then public hosts."""

        hosts: list[UploadHost] = []
        if remote is not None:
            hosts.append(SupabaseBucketHost(remote.client, bucket=bucket))
        hosts.extend([ZeroXZeroHost(), TmpFilesHost(), FileIoHost()])
        return UploadRelay(hosts)

    @staticmethod
    def create_pipeline(
        config: ChaptercastConfig,
        runtime: ProviderRuntimeConfig,
        *,
        run_logger: RunLogger | None = None,
        stage_progress_callback: Callable[[str, int, int], None] | None = None,
    ) -> ChapterPipeline:
        """Wire a `ChapterPipeline` from configuration."""

        data_dir = config.resolved_data_dir
        clock = MonotonicClock()
        backend, remote = ProviderFactory.create_record_store(runtime, data_dir, clock=clock)
        return ChapterPipeline(
            store=ArtifactStore(backend, clock=clock),
            script_provider=ProviderFactory.create_script_writer(runtime),
            speech_provider=ProviderFactory.create_speech_synthesizer(
                runtime, data_dir / "scratch"
            ),
            avatar_provider=ProviderFactory.create_avatar_provider(runtime),
            relay=ProviderFactory.create_upload_relay(remote, config.audio_bucket),
            poll_interval_seconds=config.poll_interval_seconds,
            poll_max_attempts=config.poll_max_attempts,
            run_logger=run_logger,
            stage_progress_callback=stage_progress_callback,
        )
