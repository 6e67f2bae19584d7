from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Component selectors
    ENERGY_PREDICTOR: str = Field("best_fit", description="Energy predictor used for forecasts")
    TELEMETRY_SOURCE: str = Field("prometheus", description="Telemetry source the data gatherer polls")
    CURRENT_DIVISION_RULE: str = Field("default", description="Share rule for current power queries")
    HISTORIC_DIVISION_RULE: str = Field("load_based", description="Division rule for historic energy queries")
    PREDICTOR_SHARE_RULE: str = Field("default", description="Share rule used when apportioning forecasts")
    WORKLOAD_ESTIMATOR: str = Field("cpu_recent_history", description="Estimator used when DEFAULT_CPU_LOAD is -1")

    # Predictor behaviour
    DEFAULT_CPU_LOAD: float = Field(0.6, description="Assumed CPU load fraction, -1 to use measured utilisation")
    DEFAULT_ACCELERATOR_LOAD: float = Field(0.0, description="Assumed accelerator usage, -1 to use measured usage")
    CONSIDER_IDLE_ENERGY: bool = Field(True, description="Share idle power evenly before dividing forecasts by load")
    CONSIDER_IDLE_ENERGY_CURRENT: bool = Field(True, description="Share idle power evenly for current power queries")
    OVERHEAD_PER_HOST_WATTS: float = Field(0.0, description="General purpose node overhead attributed to each host")
    CPU_OBSERVE_MINUTES: int = Field(0, description="Minutes of CPU history used by the recent utilisation estimator")
    CPU_OBSERVE_SECONDS: int = Field(30, description="Seconds of CPU history used by the recent utilisation estimator")
    AVERAGE_POWER_OBSERVE_MINUTES: int = Field(15, description="Window of host records used by the average power predictor")
    BOOT_HISTORY_BUCKET_SIZE: int = Field(500, description="Bucket size in seconds for boot relative CPU traces")
    ARIMA_HISTORY_MINUTES: int = Field(60, description="Minutes of CPU history the ARIMA estimator is fitted on")
    ARIMA_HORIZON_STEPS: int = Field(30, description="Number of samples the ARIMA estimator forecasts ahead")
    ACCELERATOR_GROUPING_PARAMETER: str = Field(
        "nvidia_value:null:percent",
        description="Accelerator metric used to group calibration data for the bimodal model"
    )
    ACCELERATOR_CALIBRATION_DIR: Optional[str] = Field(
        None, description="Directory holding <accelerator name>.csv calibration files"
    )
    MODEL_CACHE_MAX_SIZE: int = Field(50, description="Maximum number of fitted models held per model family")

    # Data gatherer
    PERFORM_DATA_GATHERING: bool = Field(True, description="Whether this instance owns writes to the store")
    POLL_INTERVAL_SECONDS: float = Field(1.0, description="Sleep between data gatherer ticks")
    FAULT_THRESHOLD: int = Field(100, description="Fault count above which the gatherer pauses")
    FAULT_COOLDOWN_SECONDS: float = Field(300.0, description="Length of the pause after a fault storm")
    AUTO_CALIBRATE_FROM_OBSERVED_POWER: bool = Field(
        False, description="Build a two point calibration from observed power for uncalibrated hosts"
    )
    GENERAL_PURPOSE_NODES: str = Field("", description="Comma separated host names providing shared infrastructure")

    # Disk logging and write back
    LOG_VMS_TO_DISK: bool = Field(False, description="Append apportioned VM power to a log file")
    LOG_APPS_TO_DISK: bool = Field(False, description="Append apportioned application power to a log file")
    VM_LOG_FILENAME: str = Field("VmEnergyUsageData.txt", description="VM power log file")
    APP_LOG_FILENAME: str = Field("AppEnergyUsageData.txt", description="Application power log file")
    LOGGER_CONSIDER_IDLE_ENERGY: bool = Field(True, description="Idle toggle used by the disk loggers")
    WRITE_BACK_TO_TELEMETRY: bool = Field(False, description="Publish apportioned power back as a metric")

    # Prometheus
    PROMETHEUS_URL: str = Field("http://localhost:9090", description="URL of the Prometheus server")
    PROMETHEUS_TIMEOUT: int = Field(30, description="Timeout in seconds for Prometheus queries")
    PROMETHEUS_USERNAME: Optional[str] = Field(None, description="Username for Prometheus basic auth")
    PROMETHEUS_PASSWORD: Optional[str] = Field(None, description="Password for Prometheus basic auth")
    PROMETHEUS_CA_BUNDLE: Optional[str] = Field(None, description="Path to a CA bundle for verifying Prometheus TLS")
    PROMETHEUS_PUSHGATEWAY_URL: Optional[str] = Field(None, description="Pushgateway used for metric write back")

    # Logging
    LOG_LEVEL: str = Field("INFO", description="Logging level")

    @field_validator("DEFAULT_CPU_LOAD")
    @classmethod
    def validate_default_cpu_load(cls, v: float) -> float:
        if v != -1 and not 0.0 <= v <= 1.0:
            raise ValueError("Default CPU load must be -1 or within [0, 1]")
        return v

    # in the grouping parameter's own units, e.g. 0 or 100 for a percentage
    @field_validator("DEFAULT_ACCELERATOR_LOAD")
    @classmethod
    def validate_default_accelerator_load(cls, v: float) -> float:
        if v != -1 and v < 0:
            raise ValueError("Default accelerator load must be -1 or at least 0")
        return v

    @field_validator("MODEL_CACHE_MAX_SIZE", "FAULT_THRESHOLD")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @property
    def cpu_observe_window_seconds(self) -> int:
        return self.CPU_OBSERVE_MINUTES * 60 + self.CPU_OBSERVE_SECONDS

    @property
    def general_purpose_node_names(self) -> List[str]:
        return [name.strip() for name in self.GENERAL_PURPOSE_NODES.split(",") if name.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
