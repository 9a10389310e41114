"""
Core backup execution logic.

Dump command resolution, job record state machine, stream fan-out,
progress delivery, the backup runner and the recurring scheduler.
"""
