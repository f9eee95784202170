# dubmedia/services/dubbing/client.py
from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import requests
from pydantic import ValidationError

from dubmedia.common.concurrency.pipe import BytePipe, PipeAbortedError, start_producer
from dubmedia.common.logging import get_logger
from dubmedia.common.settings import Settings, get_settings
from dubmedia.domain.dataclasses.dubbing_config import DubbingConfig
from dubmedia.domain.entities.dubbing_job import DubbingJob
from dubmedia.domain.enums import DubbingStatus
from dubmedia.domain.errors import (
    DubbingAPIError,
    DubbingFailedError,
    DubbingInProgressError,
    DubbingNotFoundError,
    DubMediaError,
    InvalidAPIKeyError,
    OperationCancelledError,
    SourceFileNotFoundError,
)
from dubmedia.domain.ports.compressor import CompressorPort
from dubmedia.domain.ports.process import CommandRunnerPort
from dubmedia.services.compression.ffmpeg_compressor import FFmpegCompressor
from dubmedia.services.dubbing.multipart import MultipartWriter, video_mime_type
from dubmedia.services.probe.ffprobe_adapter import FFprobeVideoProbe
from dubmedia.services.process.subprocess_runner import SubprocessRunner
from dubmedia.services.schemas.dubbing import CreateDubbingResponse, DubbingJobSchema, ErrorEnvelope

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.elevenlabs.io"
API_KEY_HEADER = "xi-api-key"


class DubbingClient:
    """
    Client for the remote dubbing API.

    Stateless apart from the immutable DubbingConfig and the HTTP session, so
    calls for different jobs may run concurrently. Every call blocks; pass a
    `threading.Event` as `cancel` to abort in-flight work. Nothing is retried
    here: polling and backoff are up to the caller.
    """

    def __init__(
        self,
        api_key: str,
        config: Optional[DubbingConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        compressor: Optional[CompressorPort] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Tuple[float, float] = (10.0, 300.0),
        upload_chunk_size: int = 1024 * 1024,
        download_chunk_size: int = 64 * 1024,
    ) -> None:
        self._api_key = api_key
        self.config = config or DubbingConfig()
        self._session = session or requests.Session()
        if compressor is None:
            runner = SubprocessRunner()
            compressor = FFmpegCompressor(runner, FFprobeVideoProbe(runner))
        self.compressor = compressor
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.upload_chunk_size = upload_chunk_size
        self.download_chunk_size = download_chunk_size

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        runner: Optional[CommandRunnerPort] = None,
        session: Optional[requests.Session] = None,
    ) -> "DubbingClient":
        cfg = settings or get_settings()
        if not cfg.elevenlabs_api_key:
            raise InvalidAPIKeyError("ELEVENLABS_API_KEY is not set")

        probe_runner = runner or SubprocessRunner(timeout_sec=cfg.ffmpeg.probe_timeout_sec)
        encode_runner = runner or SubprocessRunner()
        compressor = FFmpegCompressor(
            encode_runner,
            FFprobeVideoProbe(probe_runner, cfg.ffmpeg.ffprobe_bin),
            ffmpeg_bin=cfg.ffmpeg.ffmpeg_bin,
        )
        el = cfg.elevenlabs
        return cls(
            cfg.elevenlabs_api_key,
            el.to_dubbing_config(),
            session=session,
            compressor=compressor,
            base_url=el.base_url,
            timeout=el.timeout,
            upload_chunk_size=el.upload_chunk_size,
            download_chunk_size=el.download_chunk_size,
        )

    # ---- public API -----------------------------------------------------------
    def create_dub_from_url(
        self,
        video_url: str,
        source_lang: str,
        target_lang: str,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> DubbingJob:
        """Start a dubbing job for a remotely hosted video (e.g. a YouTube URL)."""
        step = "POST /v1/dubbing"
        _check_cancel(cancel, step)

        buf = io.BytesIO()
        writer = MultipartWriter(buf)
        writer.write_field("source_url", video_url)
        for name, value in self._form_fields(source_lang, target_lang):
            writer.write_field(name, value)
        writer.close()

        logger.debug("POST %s", self._url("/v1/dubbing"))
        try:
            resp = self._session.post(
                self._url("/v1/dubbing"),
                data=buf.getvalue(),
                headers=self._headers({"Content-Type": writer.content_type}),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DubbingAPIError(step, str(e)) from e
        return self._parse_created(resp, step, target_lang)

    def create_dub_from_file(
        self,
        path: str | Path,
        source_lang: str,
        target_lang: str,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> DubbingJob:
        """
        Upload a local video, compressing it first when it is over the size
        ceiling. A compressed intermediate is always deleted afterwards; the
        original file is never touched.
        """
        source = Path(path)
        if not source.is_file():
            raise SourceFileNotFoundError(source)

        upload_path = Path(self.compressor.compress_for_dubbing(source, cancel=cancel))
        try:
            return self._upload_file(upload_path, source_lang, target_lang, cancel)
        finally:
            if upload_path != source:
                try:
                    upload_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning("Could not remove compressed file %s: %s", upload_path, e)

    def get_dubbing_status(
        self,
        dubbing_id: str,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> DubbingJob:
        """Fetch the job as the remote reports it. No local interpretation."""
        step = f"GET /v1/dubbing/{dubbing_id}"
        _check_cancel(cancel, step)
        logger.debug("GET %s", self._url(f"/v1/dubbing/{dubbing_id}"))
        try:
            resp = self._session.get(
                self._url(f"/v1/dubbing/{dubbing_id}"),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DubbingAPIError(step, str(e)) from e

        self._check_response(resp, step, dubbing_id)
        try:
            data = DubbingJobSchema.model_validate_json(resp.content)
        except ValidationError as e:
            raise DubbingAPIError(step, f"failed to parse response: {e}") from e

        return DubbingJob(
            id=data.dubbing_id,
            status=data.status,
            target_languages=list(data.target_languages or []),
            error=data.error or None,
            expected_duration_sec=data.expected_duration_sec,
            name=data.name,
        )

    def download_dubbed_audio(
        self,
        dubbing_id: str,
        lang: str,
        output_path: str | Path,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> Path:
        """
        Stream the dubbed media for `lang` into `output_path`.

        The status is re-fetched first; a job still dubbing raises
        DubbingInProgressError and a failed job raises DubbingFailedError,
        in both cases without touching the audio endpoint.
        """
        job = self.get_dubbing_status(dubbing_id, cancel=cancel)
        if job.status == DubbingStatus.dubbing:
            raise DubbingInProgressError(dubbing_id)
        if job.status == DubbingStatus.failed:
            raise DubbingFailedError(job.error)

        step = f"GET /v1/dubbing/{dubbing_id}/audio/{lang}"
        _check_cancel(cancel, step)
        out = Path(output_path)
        logger.debug("GET %s", self._url(f"/v1/dubbing/{dubbing_id}/audio/{lang}"))
        try:
            resp = self._session.get(
                self._url(f"/v1/dubbing/{dubbing_id}/audio/{lang}"),
                headers=self._headers(),
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise DubbingAPIError(step, str(e)) from e

        with resp:
            self._check_response(resp, step, dubbing_id)
            try:
                out.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DubbingAPIError(step, f"failed to create output directory: {e}") from e
            written = self._stream_to_file(resp, out, step, cancel)

        logger.info("Downloaded dubbing %s (%s) to %s, %d bytes", dubbing_id, lang, out, written)
        return out

    # ---- internals ------------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {API_KEY_HEADER: self._api_key}
        if extra:
            headers.update(extra)
        return headers

    def _form_fields(self, source_lang: str, target_lang: str) -> List[Tuple[str, str]]:
        """Form fields shared by URL and file submissions, in wire order."""
        cfg = self.config
        fields: List[Tuple[str, str]] = [("target_lang", target_lang)]
        if source_lang:
            fields.append(("source_lang", source_lang))
        fields += [
            ("num_speakers", str(cfg.effective_num_speakers)),
            ("drop_background_audio", _bool_str(cfg.drop_background_audio)),
            ("watermark", _bool_str(cfg.test_mode)),
            ("highest_resolution", _bool_str(not cfg.test_mode)),
        ]
        if cfg.start_time > 0:
            fields.append(("start_time", str(cfg.start_time)))
        if cfg.end_time > 0:
            fields.append(("end_time", str(cfg.end_time)))
        return fields

    def _upload_file(
        self,
        upload_path: Path,
        source_lang: str,
        target_lang: str,
        cancel: Optional[threading.Event],
    ) -> DubbingJob:
        step = "POST /v1/dubbing"
        _check_cancel(cancel, step)
        try:
            fh = upload_path.open("rb")
        except OSError as e:
            raise DubbingAPIError(step, f"failed to open file: {e}") from e

        pipe = BytePipe()
        writer = MultipartWriter(pipe)
        fields = self._form_fields(source_lang, target_lang)

        def _produce() -> int:
            try:
                with fh:
                    copied = writer.write_file(
                        "file", fh, upload_path.name, video_mime_type(upload_path),
                        chunk_size=self.upload_chunk_size, cancel=cancel,
                    )
                for name, value in fields:
                    writer.write_field(name, value)
                writer.close()
            except Exception as e:
                pipe.close_writer(error=e)
                raise
            pipe.close_writer()
            return copied

        producer = start_producer(_produce, name="dubbing-upload")
        resp = None
        http_error: Optional[Exception] = None
        try:
            logger.debug("POST %s (streaming %s)", self._url("/v1/dubbing"), upload_path)
            resp = self._session.post(
                self._url("/v1/dubbing"),
                data=iter(pipe),
                headers=self._headers({"Content-Type": writer.content_type}),
                timeout=self.timeout,
            )
        except Exception as e:
            http_error = e
        finally:
            pipe.close_reader()

        # BrokenPipeError only means the server answered before reading the whole body.
        producer_error = producer.exception()
        if producer_error is not None and not isinstance(producer_error, BrokenPipeError):
            if isinstance(producer_error, DubMediaError):
                raise producer_error
            raise DubbingAPIError(step, f"failed to write multipart body: {producer_error}") from producer_error
        if http_error is not None:
            if isinstance(http_error, (requests.RequestException, PipeAbortedError)):
                raise DubbingAPIError(step, str(http_error)) from http_error
            raise http_error
        return self._parse_created(resp, step, target_lang)

    def _parse_created(self, resp: requests.Response, step: str, target_lang: str) -> DubbingJob:
        self._check_response(resp, step)
        try:
            data = CreateDubbingResponse.model_validate_json(resp.content)
        except ValidationError as e:
            raise DubbingAPIError(step, f"failed to parse response: {e}") from e

        logger.info("Dubbing job %s accepted (%s)", data.dubbing_id, target_lang)
        # accepted, not finished: the create response carries no status
        return DubbingJob(
            id=data.dubbing_id,
            status=DubbingStatus.dubbing.value,
            target_languages=[target_lang],
            expected_duration_sec=data.expected_duration_sec,
        )

    @staticmethod
    def _check_response(resp: requests.Response, step: str, dubbing_id: Optional[str] = None) -> None:
        code = resp.status_code
        if 200 <= code < 300:
            return
        if code == 401:
            raise InvalidAPIKeyError()
        if code == 404:
            raise DubbingNotFoundError(dubbing_id)
        raise DubbingAPIError(step, _error_message(resp.content or b""), status_code=code)

    def _stream_to_file(
        self,
        resp: requests.Response,
        out: Path,
        step: str,
        cancel: Optional[threading.Event],
    ) -> int:
        written = 0
        try:
            with out.open("wb") as fh:
                for chunk in resp.iter_content(chunk_size=self.download_chunk_size):
                    _check_cancel(cancel, step)
                    if chunk:
                        fh.write(chunk)
                        written += len(chunk)
        except (OSError, requests.RequestException) as e:
            out.unlink(missing_ok=True)
            raise DubbingAPIError(step, f"failed to write dubbed audio to file: {e}") from e
        except OperationCancelledError:
            out.unlink(missing_ok=True)
            raise
        return written


# ---- helpers -------------------------------------------------------------------
def _bool_str(v: bool) -> str:
    return "true" if v else "false"


def _check_cancel(cancel: Optional[threading.Event], step: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError(f"{step} cancelled")


def _error_message(body: bytes) -> str:
    """Prefer {detail:{message}}; otherwise the raw body text."""
    try:
        env = ErrorEnvelope.model_validate_json(body)
    except ValidationError:
        env = None
    if env is not None and env.message:
        return env.message
    return body.decode("utf-8", "replace")
