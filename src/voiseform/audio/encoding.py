"""PCM/WAV conversion and data URI helpers."""

import base64
import binascii
import io
import wave

import numpy as np

from voiseform.constants import SAMPLE_WIDTH_BYTES


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int,
    channels: int = 1,
    sample_width: int = SAMPLE_WIDTH_BYTES
) -> bytes:
    """
    Wrap raw PCM bytes in a WAV container.

    Args:
        pcm: Interleaved little-endian PCM samples
        sample_rate: Sample rate in Hz
        channels: Channel count
        sample_width: Bytes per sample

    Returns:
        Complete WAV file bytes
    """
    wav_buffer = io.BytesIO()
    with wave.open(wav_buffer, 'wb') as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return wav_buffer.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """
    Decode 16-bit WAV bytes into float32 samples.

    Args:
        data: WAV file bytes

    Returns:
        Tuple of (samples shaped (frames, channels), sample_rate)

    Raises:
        ValueError: If the data is not a 16-bit PCM WAV file
    """
    try:
        with wave.open(io.BytesIO(data), 'rb') as wav_file:
            channels = wav_file.getnchannels()
            sample_width = wav_file.getsampwidth()
            sample_rate = wav_file.getframerate()
            frames = wav_file.readframes(wav_file.getnframes())
    except (wave.Error, EOFError) as e:
        raise ValueError(f"Invalid WAV data: {e}") from e

    if sample_width != SAMPLE_WIDTH_BYTES:
        raise ValueError(f"Unsupported sample width: {sample_width * 8} bits")

    samples = pcm16_to_float(frames)
    return samples.reshape(-1, channels), sample_rate


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Convert raw int16 PCM bytes to normalized float32 samples."""
    usable = len(data) - (len(data) % SAMPLE_WIDTH_BYTES)
    return np.frombuffer(data[:usable], dtype=np.int16).astype(np.float32) / 32768.0


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode bytes as a base64 data URI."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def parse_data_uri(uri: str) -> tuple[str, bytes]:
    """
    Split a base64 data URI into its MIME type and payload.

    Args:
        uri: URI of the form ``data:<mime>;base64,<payload>``

    Returns:
        Tuple of (mime_type, decoded bytes)

    Raises:
        ValueError: If the URI is not a base64 data URI
    """
    if not uri.startswith("data:") or "," not in uri:
        raise ValueError("Not a data URI")

    header, payload = uri[5:].split(",", 1)
    if not header.endswith(";base64"):
        raise ValueError("Only base64 data URIs are supported")

    try:
        decoded = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e

    return header[: -len(";base64")], decoded
