"""
Tests for the colosseum package.

This package contains tests for:
- Replay store conversion and sampling
- Policy networks and their transferable form
- Inference pool throttling, eviction and shutdown
- Arenas, scoring and the slot scheduler
- The generational loop
- Critic, actor and the trainer service
- Configuration, wiring and reports
"""
