"""
keyframes.command_builder
~~~~~~~~~~~~~~~~~~~~~~~~~
Builds the ffmpeg analysis command as a plain list[str].

Keeping command construction separate means you can:
  - log / print the exact command before running it
  - paste it straight into a terminal for debugging
  - unit-test flag generation without running any process

The vector does not include the ffmpeg binary or the progress plumbing;
the engine prepends those itself.
"""

from __future__ import annotations

import shlex

from keyframes.models import AnalysisParameters

INPUT_NAME = "input.mp4"
STATS_NAME = "file.log"

# x264 also writes a macroblock-tree companion next to the stats file.
STATS_COMPANIONS = (STATS_NAME, f"{STATS_NAME}.mbtree", f"{STATS_NAME}.temp", f"{STATS_NAME}.mbtree.temp")


def build_analysis_command(
    input_name: str,
    params: AnalysisParameters,
) -> list[str]:
    """
    Build the ffmpeg arguments for one first-pass x264 analysis.

    The command structure is:
        -i <input>
        -threads <n>
        -an                         ← audio is irrelevant to keyframes
        -c:v libx264 -preset:v ultrafast -tune animation
        -x264-params keyint=infinite:scenecut=<s>:pass=1:stats=file.log
        -f null -                   ← encoded frames are discarded

    Example output:
        ['-i', 'input.mp4', '-threads', '4', '-an',
         '-c:v', 'libx264', '-preset:v', 'ultrafast', '-tune', 'animation',
         '-x264-params', 'keyint=infinite:scenecut=40:pass=1:stats=file.log',
         '-f', 'null', '-']
    """
    x264_params = ":".join([
        "keyint=infinite",
        f"scenecut={params.scenecut}",
        "pass=1",
        f"stats={STATS_NAME}",
    ])

    return [
        "-i", input_name,
        "-threads", str(params.threads),
        "-an",
        "-c:v", "libx264",
        "-preset:v", "ultrafast",
        "-tune", "animation",
        "-x264-params", x264_params,
        "-f", "null",
        "-",
    ]


def command_as_string(cmd: list[str]) -> str:
    """Human-readable version of the command for logging."""
    return shlex.join(cmd)
