"""
uciplay: play chess against a UCI engine over HTTP.

Components:
- coordinator: owns the single game session and sequences client move -> engine reply
- session: board/history ownership and the serializable result views
- channel: UCI engine subprocess conversation (handshake, options, timed search)
- notation: UCI/SAN decoding and SAN history rendering
- server: Flask routes, error mapping, startup and graceful shutdown
- config: settings.yml / environment loading
"""
# Package exports are intentionally minimal; import modules directly as needed.
