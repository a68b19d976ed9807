import os

# --- KONFIGURATION ---
# Pfade und Standardwerte, per Umgebungsvariable überschreibbar.
DB_PATH = os.environ.get("DUENGER_DB", os.path.join("data", "db.json"))
SEED_PATH = os.environ.get("DUENGER_SEED", os.path.join("data", "seed.json"))
LOG_LEVEL = os.environ.get("DUENGER_LOG_LEVEL", "INFO").upper()

DEFAULT_VOLUME_L = 100.0
DEFAULT_INJECTOR_RATIO = 200.0
DEFAULT_EC_SCALE = 1.10
CURRENCY = os.environ.get("DUENGER_CURRENCY", "RM")

# Ab diesem N-Wert (ppm) in einer Direktmischung wird vor einer Stammlösung gewarnt
STOCK_WARNING_N_PPM = 1500.0
