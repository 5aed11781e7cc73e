"""
SLA & Auto-Resolution Module
============================

Bounded Context for SLA targets and time-based auto-resolution.

Responsibilities:
- SLA target and breach computation per severity
- SLA summary and compliance reporting
- Scheduled breach refresh
- Auto-resolution and exam-date cleanup sweeps (scheduled twice daily or manual)
- SLA policy hot-reload via watchdog
"""
