"""
Saver App - Database Persistence

Responsibilities:
- Replace or merge users, maps and records through one connection
- Keep (map_id, game, style, course) unique when a record is beaten
- Report affected row counts for progress logging

Database Schema:
- users(user_id PK, username)
- maps(map_id PK, name, creator, game, date, created_at, updated_at, submitter,
  small_thumb, large_thumb, asset_version, load_count, modes)
- globals(time_id PK, user_id FK, map_id FK, game, style, course, date, time,
  UNIQUE(map_id, game, style, course))
"""
