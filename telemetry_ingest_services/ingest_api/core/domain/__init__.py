from .reading import Reading, ReadingCandidate, ReadingStatistics

__all__ = ["Reading", "ReadingCandidate", "ReadingStatistics"]
