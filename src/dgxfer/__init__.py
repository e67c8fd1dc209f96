"""dgxfer: file transfer over UDP in fixed 4096-byte CRC32C frames.

- ``packet`` builds and reads frames and acknowledgments
- ``exchange`` delivers one frame with a bounded retry budget
- ``rate`` turns a receiver's byte-rate hint into an inter-frame delay
- ``sender`` runs the NAME/SIZE/HASH/START, DATA..., STOP session
"""

__all__ = []
