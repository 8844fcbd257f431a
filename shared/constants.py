"""
Shared constants used across the dashboard.
"""

# Audio formats accepted by the upload flow
ALLOWED_AUDIO_MIME_TYPES = [
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/ogg",
    "audio/aac",
    "audio/webm",
    "audio/mp4",
    "audio/x-m4a",
    "audio/opus",
]

# Voice-message container hint (e.g. WhatsApp notes)
VOICE_NOTE_HINT = ".opus"
VOICE_NOTE_MIME_HINT = "opus"

# Duration estimation
MIN_ESTIMATED_DURATION = 5       # seconds
MAX_TRACK_DURATION = 3600        # seconds (1 hour)
VOICE_NOTE_BYTES_PER_SECOND = 6000   # ~48 kbps
COMPRESSED_KB_PER_SECOND = 16        # ~128 kbps
PLACEHOLDER_DURATION = 180       # default written when nothing better was known

LOCAL_DECODE_TIMEOUT = 5         # seconds, freshly selected file
REMOTE_DECODE_TIMEOUT = 10       # seconds, stored asset during a correction pass

# Upload settings
MAX_UPLOAD_BYTES = 100 * 1024 * 1024  # 100MB
DEFAULT_GENRE = "Unclassified"
MUSIC_BUCKET = "music"
UPLOAD_CACHE_CONTROL = "3600"

# Correction sweep
DEFAULT_SWEEP_WORKERS = 4
MAX_SWEEP_WORKERS = 16

# Storage links
SIGNED_URL_EXPIRY = 3600         # seconds
DIAGNOSE_LIST_LIMIT = 10

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/melodia"
DEFAULT_DATA_DIR = "~/.local/share/melodia"
CONFIG_FILENAME = "config.json"
DATABASE_FILENAME = "tracks.db"

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 10  # seconds
