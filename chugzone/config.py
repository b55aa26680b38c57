"""
Single place for server defaults.
Every value can be overridden with an environment variable of the same name.
"""
import os

# Seconds between race cards while a horse race is running
RACE_DRAW_INTERVAL = float(os.environ.get("RACE_DRAW_INTERVAL", "0.8"))
# Seconds a Ride the Bus player has to give or take a matched card before it defaults to take
MATCH_DECISION_TIMEOUT = float(os.environ.get("MATCH_DECISION_TIMEOUT", "10"))
# Seconds a beer pong throw is "in the air" before the host resolves it
SHOT_RESOLVE_DELAY = float(os.environ.get("SHOT_RESOLVE_DELAY", "1.5"))
# Seconds the bus rider announcement stays up before the ride starts
BUS_RIDER_ANNOUNCE_DELAY = float(os.environ.get("BUS_RIDER_ANNOUNCE_DELAY", "4"))

# Comma-separated origins for the web clients
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Times a background host action is retried after losing a write race
BACKGROUND_WRITE_RETRIES = int(os.environ.get("BACKGROUND_WRITE_RETRIES", "5"))
