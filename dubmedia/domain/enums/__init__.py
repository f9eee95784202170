from dubmedia.domain.enums.dubbing_status import DubbingStatus
__all__ = [
    "DubbingStatus",
]
