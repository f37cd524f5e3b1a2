# dronefix — Drone Camera Video Repair Engine
# Salvages MP4 files left unplayable when recording was interrupted.
#
# Architecture (bottom → top):
#   byte_reader   — Sequential big-endian reader (mmap + buffered fallback)
#   atoms         — 8-byte atom header probe ('ftyp', 'moov', 'free', 'mdat')
#   profiles      — SPS/PPS catalog for the 15 supported video formats
#   classifier    — Leading-signature scan: which repair path applies
#   header_synth  — Repair path A: rebuild the 'ftyp' header, copy the rest
#   restream      — Repair path B: length-prefixed NALs → Annex-B .h264
#   repair        — Orchestrator (plan, execute, RepairResult)
#   verify        — Post-repair integrity + ffmpeg playback check
