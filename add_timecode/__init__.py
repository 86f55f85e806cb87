"""add-timecode: stamp video files with a creation-time SMPTE timecode.

Derives a timecode from a file's creation time (or an operator-supplied
start value), embeds it with an ffmpeg stream-copy remux, and can watch
a folder to process newly arrived clips automatically.
"""

__version__ = "1.0.0"
__app_name__ = "add-timecode"
