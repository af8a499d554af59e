"""
Edge client package for the BK215 battery inverter.

Keeps a long-lived TCP session to the inverter's local JSON protocol, frames
the undelimited byte stream into messages, correlates write commands with
device acknowledgements, merges partial data reports into a snapshot, and
projects that snapshot into a home-automation state registry.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""
