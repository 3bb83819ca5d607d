"""
Interfaces module - Entry points into the approval pipeline
===========================================================

- web/:   FastAPI HTTP interface (/health, /pairing/approve)
- cli.py: click commands for operators (serve, approve, doctor)
"""
