"""Medcore Sequence - Collision-free partitioned document numbers.

Provides:
- SequencePartition: per prefix+date counter row (the high-water mark)
- allocate(): atomic read-max-and-increment returning e.g. "APT2506010001"
- format_document_number() / parse_document_number()
"""

__version__ = "0.1.0"
