"""Server-side capture: browser PCM audio in, one final transcript fragment out."""
import asyncio
import base64
import os
import traceback
from typing import Callable, Optional

from transcript import Fragment

# 16 kHz mono PCM16: anything under ~200ms is noise, not an answer
MIN_PCM_BYTES = 6000


def decode_pcm_chunks(audio_chunks: list[str]) -> bytes:
    return b"".join(base64.b64decode(chunk) for chunk in audio_chunks)


def recognize_pcm(pcm: bytes, project_id: str, model: str, sample_rate: int) -> str:
    """Blocking Speech-to-Text V2 call; recognizer results are joined in order."""
    from google.cloud.speech_v2 import SpeechClient
    from google.cloud.speech_v2.types import cloud_speech

    config = cloud_speech.RecognitionConfig(
        explicit_decoding_config=cloud_speech.ExplicitDecodingConfig(
            encoding=cloud_speech.ExplicitDecodingConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=sample_rate,
            audio_channel_count=1,
        ),
        language_codes=["en-US"],
        model=model,
    )
    response = SpeechClient().recognize(request=cloud_speech.RecognizeRequest(
        recognizer=f"projects/{project_id}/locations/global/recognizers/_",
        config=config,
        content=pcm,
    ))
    return " ".join(r.alternatives[0].transcript for r in response.results if r.alternatives).strip()


async def transcribe_answer(audio_chunks: list[str]) -> Optional[Fragment]:
    """Transcribe one recorded answer into a final fragment.

    Returns None when transcription is not configured, the audio is unusable,
    or the recognizer heard nothing; the session treats that as no speech.
    """
    project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project_id:
        print("[STT] ERROR: GOOGLE_CLOUD_PROJECT is not set.")
        return None
    if not audio_chunks:
        return None

    try:
        pcm = decode_pcm_chunks(audio_chunks)
    except ValueError as e:
        print(f"[STT] Invalid base64 audio: {e}")
        return None

    sample_rate = int(os.getenv("STT_SAMPLE_RATE", "16000"))
    print(f"[STT] PCM buffer: {len(pcm)} bytes (~{len(pcm) // (sample_rate * 2 // 1000)}ms of audio)")
    if len(pcm) < MIN_PCM_BYTES:
        print(f"[STT] Buffer too short ({len(pcm)} bytes) -skipping")
        return None

    model = os.getenv("STT_MODEL", "latest_long")
    try:
        text = await asyncio.to_thread(recognize_pcm, pcm, project_id, model, sample_rate)
    except Exception as e:
        print(f"[STT] ERROR during Google Cloud STT transcription: {e}")
        traceback.print_exc()
        return None

    if not text:
        return None
    print(f"[STT] Speech-to-Text result: '{text}'")
    return Fragment(text=text, is_final=True)


async def transcribe_into(deliver: Callable[[Fragment], None], audio_chunks: list[str]) -> Optional[Fragment]:
    """Transcribe the chunks and hand the resulting final fragment to the capture sink."""
    fragment = await transcribe_answer(audio_chunks)
    if fragment is not None:
        deliver(fragment)
    return fragment
