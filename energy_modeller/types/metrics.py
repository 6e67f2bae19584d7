"""Well-known metric names carried by measurements."""

POWER = "power"
ENERGY = "energy"
CPU_IDLE_PERCENT = "cpu_idle_percent"
CPU_SPOT_USAGE_PERCENT = "cpu_spot_usage_percent"
MEMORY_AVAILABLE_BYTES = "memory_available_bytes"
MEMORY_TOTAL_BYTES = "memory_total_bytes"

GPU_PRESENT = "gpu_present"
GPU_COUNT = "gpu_count"
GPU_USAGE_PREFIX = "gpu_usage"
MIC_PRESENT = "mic_present"
MIC_COUNT = "mic_count"
MIC_USAGE_PREFIX = "mic_usage"

APP_ALLOCATED_COUNT = "app_allocated_count"
APP_RUNNING_COUNT = "app_running_count"
APP_STATUS = "app_status"

APP_POWER = "app_power"
VM_POWER = "vm_power"
