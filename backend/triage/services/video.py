"""
Assemble buffered base64 JPEG frames into an MP4 for batch vitals upload.

Frames are written to a throwaway working directory, muxed by ffmpeg at the
capture frame rate, and the result is read back into memory before the
directory is removed.
"""
import base64
import binascii
import logging
import subprocess
import tempfile
from pathlib import Path

from triage.errors import EncodingError

logger = logging.getLogger(__name__)


def decode_frame(frame: str) -> bytes:
    """Decode a base64 frame, accepting a `data:image/jpeg;base64,` prefix."""
    if frame.startswith("data:"):
        frame = frame.split(",", 1)[-1]
    try:
        return base64.b64decode(frame, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncodingError(f"Frame is not valid base64: {e}") from e


def assemble_video(
    frames: list[str],
    fps: int = 5,
    ffmpeg: str = "ffmpeg",
    timeout: float = 120.0,
) -> bytes:
    if not frames:
        raise EncodingError("No frames to encode")
    with tempfile.TemporaryDirectory(prefix="vitals-") as workdir:
        work = Path(workdir)
        for i, frame in enumerate(frames):
            (work / f"frame_{i:05d}.jpg").write_bytes(decode_frame(frame))
        out = work / "scan.mp4"
        cmd = [
            ffmpeg, "-y", "-loglevel", "error",
            "-framerate", str(fps),
            "-i", str(work / "frame_%05d.jpg"),
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            # libx264 needs even dimensions
            "-vf", "scale=trunc(iw/2)*2:trunc(ih/2)*2",
            str(out),
        ]
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=timeout)
        except FileNotFoundError as e:
            raise EncodingError(f"ffmpeg not found ({ffmpeg}). Install it to use the video vitals API.") from e
        except subprocess.TimeoutExpired as e:
            raise EncodingError(f"ffmpeg timed out after {timeout:g}s") from e
        except subprocess.CalledProcessError as e:
            err = (e.stderr or e.stdout or b"").decode(errors="replace")
            raise EncodingError(f"ffmpeg failed (exit {e.returncode}): {err[:500]}") from e
        if not out.exists():
            raise EncodingError("ffmpeg did not produce output file")
        video = out.read_bytes()
    logger.info("Encoded %d frames into %d byte video", len(frames), len(video))
    return video
