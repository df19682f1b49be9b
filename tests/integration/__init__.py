"""
pulse-agent — integration test package

Purpose
- Test package marker file for subprocess-level CLI contracts.
- Must not trigger network access beyond the local loopback interface.
"""
