from spifa.results.sample_result import DrawRecorder, IterationRecord, SampleResult

__all__ = [
    "DrawRecorder",
    "IterationRecord",
    "SampleResult",
]
