"""
Application Layer

Orchestrates domain objects and infrastructure adapters to fulfil use cases.

Structure:
- services/: Queue, playback orchestration, session registry and idle reaper
- interfaces/: Port interfaces for infrastructure adapters
"""
