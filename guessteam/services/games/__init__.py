"""Room services: lifecycle, round engine, guess matching, idle eviction.

Routes and socket handlers call into these modules; nothing here knows
about HTTP or Socket.IO payloads except through ``notifications``.
"""
