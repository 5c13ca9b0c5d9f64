"""
Troublemaker engine: what this run does to itself.

Components:
- jitter: PCG-DXSM generator seeded from two 64-bit words
- effective: resolves delays, jitter and exit probability into one decision set
- load: duty-cycled CPU load phase script and its worker processes
- lifecycle: immediate or delayed process exit
"""
