from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    LOG_LEVEL: str = "INFO"
    BRIDGES_CONFIG: str = "config/bridges.yaml"
    # Bridge zones (metres)
    APPROACHING_RADIUS_M: float = 500.0
    # Once approaching a bridge, the status is only released beyond this
    APPROACHING_CLEAR_M: float = 550.0
    OPENING_RADIUS_M: float = 300.0
    UNDER_BRIDGE_RADIUS_M: float = 50.0
    # Distance beyond the bridge (opposite side) required to confirm a passage
    PASSAGE_CLEAR_MARGIN_M: float = 50.0
    # Nearest-bridge hysteresis: alternative must be 10% closer
    HYSTERESIS_MARGIN: float = 0.10
    # Course vs bearing-to-bridge below this counts as approaching (degrees)
    APPROACH_ANGLE_DEG: float = 90.0
    # COG this close to perpendicular falls back to the position tie-break
    DIRECTION_TIE_DEG: float = 15.0
    # U-turns are only believed above this speed (COG is noise when drifting)
    DIRECTION_MIN_SPEED_KN: float = 0.5
    # Waiting detection
    WAITING_SPEED_KN: float = 0.20
    WAITING_CONTINUITY_S: float = 120.0
    # Bridge text: slower vessels outside the opening radius are treated as moored
    STATIONARY_SPEED_KN: float = 0.5
    # Cleanup timeouts (minutes) by distance-to-nearest-bridge zone
    TIMEOUT_NEAR_ZONE_M: float = 300.0
    TIMEOUT_MEDIUM_ZONE_M: float = 600.0
    TIMEOUT_NEAR_MIN: float = 20.0
    TIMEOUT_MEDIUM_MIN: float = 10.0
    TIMEOUT_FAR_MIN: float = 2.0
    TIMEOUT_WAITING_MIN: float = 20.0
    GRACE_MISSES: int = 3
    # Protection inside the opening radius stops after this much silence
    PROTECTION_MAX_SILENCE_MIN: float = 60.0
    # "Just passed" status window and final-target removal hold (seconds)
    PASSED_HOLD_S: float = 60.0
    # ETA speed floors (knots), interpolated between these remaining distances
    ETA_FLOOR_NEAR_M: float = 200.0
    ETA_FLOOR_MEDIUM_M: float = 500.0
    ETA_FLOOR_NEAR_KN: float = 0.5
    ETA_FLOOR_MEDIUM_KN: float = 1.5
    ETA_FLOOR_FAR_KN: float = 2.0
    ETA_MAX_MINUTES: float = 120.0
    # GPS jump gate
    GPS_JUMP_THRESHOLD_M: float = 500.0
    GPS_JUMP_MIN_SPEED_KN: float = 3.0
    GPS_JUMP_SPEED_FACTOR: float = 1.5
    GPS_JUMP_SLACK_M: float = 100.0
    # Expiry loop polling interval (seconds)
    EXPIRY_POLL_INTERVAL_S: float = 5.0


settings = Settings()
