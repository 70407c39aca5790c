"""
MediAssist Core

Per-role session tokens that let one account stay signed in as PATIENT and
DOCTOR at the same time, and race-free reservation of doctor appointment slots.
"""

__version__ = "1.0.0"
