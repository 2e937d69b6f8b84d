"""
The processing pipeline: intake → execute → package → grant → download,
with a cleanup scheduler reclaiming everything it leaves behind.
"""
