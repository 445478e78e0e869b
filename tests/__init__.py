"""
pytest suite for df-minter.

Test categories:
- Unit tests: services and codec with a fake replica and a fake clock
- Integration tests: the CLI driven end to end against the fake replica
"""
