"""
Prometheus backed telemetry source

Host power and energy come from Kepler, CPU and memory from node-exporter,
VMs from the libvirt exporter, applications are Kubernetes pods (from
kube-state-metrics and cAdvisor) and accelerator usage from DCGM.
"""

import logging
import zlib
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from ..config import Settings
from ..exceptions import TelemetryError
from ..types import (
    ApplicationOnHost,
    EnergyUsageSource,
    GeneralPurposeNode,
    Host,
    JobStatus,
    Measurement,
    VmDeployed,
    metrics,
)
from .base import TelemetrySource
from .promql import PromQLValidationError, build_label_matcher

logger = logging.getLogger(__name__)

HOST_LABEL = "exported_instance"
VM_LABEL = "domain"
POD_LABEL = "pod"
GPU_LABEL = "gpu"

# {selector} is replaced with a label matcher for the entity being queried,
# {window} with a PromQL duration.
PROMETHEUS_QUERIES = {
    "host_power": "sum by (exported_instance) (rate(kepler_node_platform_joules_total{{{selector}}}[1m]))",
    "host_energy": "sum by (exported_instance) (kepler_node_platform_joules_total{{{selector}}}) / 3600",
    "host_cpu_idle": '100 * avg by (exported_instance) (rate(node_cpu_seconds_total{{mode="idle",{selector}}}[1m]))',
    "host_cpu_window": '1 - avg by (exported_instance) (rate(node_cpu_seconds_total{{mode="idle",{selector}}}[{window}]))',
    "host_memory_available": "node_memory_MemAvailable_bytes{{{selector}}}",
    "host_memory_total": "node_memory_MemTotal_bytes{{{selector}}}",
    "host_power_min": "min_over_time(sum by (exported_instance) (rate(kepler_node_platform_joules_total{{{selector}}}[1m]))[{window}:1m])",
    "host_power_max": "max_over_time(sum by (exported_instance) (rate(kepler_node_platform_joules_total{{{selector}}}[1m]))[{window}:1m])",
    "host_gpu_usage": "DCGM_FI_DEV_GPU_UTIL{{{selector}}}",
    "vm_info": "libvirt_domain_info_virtual_cpus",
    "vm_cpu": "100 * rate(libvirt_domain_info_cpu_time_seconds_total{{{selector}}}[1m]) / libvirt_domain_info_virtual_cpus{{{selector}}}",
    "pod_info": "kube_pod_info",
    "pod_phase": "kube_pod_status_phase == 1",
    "pod_cpu": "100 * sum by (pod) (rate(container_cpu_usage_seconds_total{{{selector}}}[1m]))",
}

POD_PHASES = {
    "Running": JobStatus.RUNNING,
    "Pending": JobStatus.PENDING,
    "Succeeded": JobStatus.COMPLETED,
    "Failed": JobStatus.FAILED,
}


class PrometheusClient:
    """A client for querying a Prometheus server."""

    def __init__(self, settings: Settings):
        self.base_url = settings.PROMETHEUS_URL.rstrip('/')
        self.timeout = settings.PROMETHEUS_TIMEOUT
        self.pushgateway_url = (settings.PROMETHEUS_PUSHGATEWAY_URL or "").rstrip('/') or None

        self.auth: Optional[Tuple[str, str]] = None
        if settings.PROMETHEUS_USERNAME and settings.PROMETHEUS_PASSWORD:
            self.auth = (settings.PROMETHEUS_USERNAME, settings.PROMETHEUS_PASSWORD)

        self.verify: Union[str, bool] = True
        if settings.PROMETHEUS_CA_BUNDLE:
            self.verify = settings.PROMETHEUS_CA_BUNDLE

    def _request(self, method: str, url: str, params: Optional[Dict[str, Any]] = None,
                 data: Optional[str] = None) -> requests.Response:
        try:
            response = requests.request(
                method,
                url,
                params=params,
                data=data,
                auth=self.auth,
                timeout=self.timeout,
                verify=self.verify
            )
            response.raise_for_status()
            return response
        except requests.exceptions.Timeout as e:
            raise TelemetryError(f"Request to Prometheus timed out: {e}") from e
        except requests.exceptions.HTTPError as e:
            raise TelemetryError(f"HTTP error occurred: {e} - {e.response.text}") from e
        except requests.exceptions.RequestException as e:
            raise TelemetryError(f"An error occurred while querying Prometheus: {e}") from e

    def query(self, query: str) -> List[Dict[str, Any]]:
        """Performs an instant query and returns the result vector."""
        response = self._request("get", f"{self.base_url}/api/v1/query", params={"query": query})
        return self._result(response.json())

    def query_range(self, query: str, start: datetime, end: datetime, step: str) -> List[Dict[str, Any]]:
        """Performs a range query and returns the result matrix."""
        params = {
            "query": query,
            "start": start.isoformat() + "Z",
            "end": end.isoformat() + "Z",
            "step": step
        }
        response = self._request("get", f"{self.base_url}/api/v1/query_range", params=params)
        return self._result(response.json())

    def push(self, job: str, instance: str, body: str):
        """Pushes text exposition format metrics to the pushgateway."""
        if not self.pushgateway_url:
            raise TelemetryError("No pushgateway configured for metric write back")
        url = f"{self.pushgateway_url}/metrics/job/{job}/instance/{instance}"
        self._request("post", url, data=body)

    def check_health(self) -> str:
        """Checks the health of the Prometheus server."""
        try:
            self._request("get", f"{self.base_url}/-/healthy")
            return "connected"
        except TelemetryError:
            return "disconnected"

    @staticmethod
    def _result(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        if payload.get("status") != "success":
            raise TelemetryError(f"Prometheus query failed: {payload.get('error', 'unknown error')}")
        return payload.get("data", {}).get("result", [])


class PrometheusTelemetrySource(TelemetrySource):
    """
    TelemetrySource backed by a Prometheus server

    Host names are the values of the ``exported_instance`` label. Names in
    ``GENERAL_PURPOSE_NODES`` are reported as general purpose nodes instead
    of hosts.
    """

    def __init__(self, settings: Settings, client: Optional[PrometheusClient] = None):
        self.client = client or PrometheusClient(settings)
        self.supports_write_back = self.client.pushgateway_url is not None
        self.general_purpose_names = set(settings.general_purpose_node_names)
        self.observed_power_window = "7d"

    # Discovery

    def _node_names(self) -> List[str]:
        results = self.client.query(self._query("host_power"))
        return sorted({r["metric"][HOST_LABEL] for r in results if HOST_LABEL in r.get("metric", {})})

    def list_hosts(self) -> List[Host]:
        names = [n for n in self._node_names() if n not in self.general_purpose_names]
        return [Host(id=_stable_id(name), name=name) for name in names]

    def list_general_purpose_nodes(self) -> List[GeneralPurposeNode]:
        names = [n for n in self._node_names() if n in self.general_purpose_names]
        return [GeneralPurposeNode(id=_stable_id(name), name=name) for name in names]

    def list_vms(self) -> List[VmDeployed]:
        vms = []
        for result in self.client.query(PROMETHEUS_QUERIES["vm_info"]):
            labels = result.get("metric", {})
            name = labels.get(VM_LABEL)
            if not name:
                continue
            host_name = labels.get(HOST_LABEL)
            vms.append(VmDeployed(
                name=name,
                id=_stable_id(name),
                cpus=int(_sample_value(result)),
                allocated_to=Host(id=_stable_id(host_name), name=host_name) if host_name else None,
            ))
        return vms

    def list_applications(self, status: Optional[JobStatus] = None) -> List[ApplicationOnHost]:
        phases = {}
        for result in self.client.query(PROMETHEUS_QUERIES["pod_phase"]):
            labels = result.get("metric", {})
            phases[labels.get(POD_LABEL)] = POD_PHASES.get(labels.get("phase"), JobStatus.PENDING)
        apps = []
        for result in self.client.query(PROMETHEUS_QUERIES["pod_info"]):
            labels = result.get("metric", {})
            pod = labels.get(POD_LABEL)
            if not pod:
                continue
            node = labels.get("node")
            apps.append(ApplicationOnHost(
                id=_stable_id(labels.get("uid", pod)),
                name=pod,
                allocated_to=Host(id=_stable_id(node), name=node) if node else None,
                status=phases.get(pod, JobStatus.RUNNING),
                deployment_id=labels.get("namespace"),
            ))
        if status is None:
            return apps
        return ApplicationOnHost.filter_by_status(apps, status)

    # Measurements

    def host_measurement(self, host: Host) -> Optional[Measurement]:
        selector = self._selector(HOST_LABEL, host.name)
        power = self.client.query(self._query("host_power", selector))
        if not power:
            return None
        values = {metrics.POWER: _sample_value(power[0])}
        clock = _sample_clock(power[0])
        for key, query_name in (
            (metrics.ENERGY, "host_energy"),
            (metrics.CPU_IDLE_PERCENT, "host_cpu_idle"),
            (metrics.MEMORY_AVAILABLE_BYTES, "host_memory_available"),
            (metrics.MEMORY_TOTAL_BYTES, "host_memory_total"),
        ):
            result = self.client.query(self._query(query_name, selector))
            if result:
                values[key] = _sample_value(result[0])
        gpus = self.client.query(self._query("host_gpu_usage", self._selector("Hostname", host.name)))
        if gpus:
            values[metrics.GPU_PRESENT] = 1.0
            values[metrics.GPU_COUNT] = float(len(gpus))
            for result in gpus:
                index = result.get("metric", {}).get(GPU_LABEL, "0")
                values[f"{metrics.GPU_USAGE_PREFIX}:{index}"] = _sample_value(result)
        return Measurement(host, clock, values)

    def vm_measurement(self, vm: VmDeployed) -> Optional[Measurement]:
        result = self.client.query(self._query("vm_cpu", self._selector(VM_LABEL, vm.name)))
        if not result:
            return None
        return Measurement(vm, _sample_clock(result[0]),
                           {metrics.CPU_SPOT_USAGE_PERCENT: _sample_value(result[0])})

    def application_measurement(self, app: ApplicationOnHost) -> Optional[Measurement]:
        result = self.client.query(self._query("pod_cpu", self._selector(POD_LABEL, app.name)))
        if not result:
            return None
        return Measurement(app, _sample_clock(result[0]), {
            metrics.CPU_SPOT_USAGE_PERCENT: _sample_value(result[0]),
            metrics.APP_STATUS: 1.0 if app.status == JobStatus.RUNNING else 0.0,
        })

    def lowest_observed_power(self, host: Host) -> float:
        return self._scalar("host_power_min", host, self.observed_power_window)

    def highest_observed_power(self, host: Host) -> float:
        return self._scalar("host_power_max", host, self.observed_power_window)

    def cpu_utilisation(self, host: Host, window_seconds: int) -> float:
        return self._scalar("host_cpu_window", host, f"{max(int(window_seconds), 1)}s")

    def cpu_utilisation_history(self, host: Host, window_seconds: int) -> List[float]:
        end = datetime.utcnow()
        start = end - timedelta(seconds=window_seconds)
        query = self._query("host_cpu_window", self._selector(HOST_LABEL, host.name), "1m")
        results = self.client.query_range(query, start, end, "60s")
        if not results:
            return []
        return [float(value) for _, value in results[0].get("values", [])]

    def write_metric(self, entity: EnergyUsageSource, key: str, value: float):
        instance = getattr(entity, "name", str(entity))
        self.client.push("energy_modeller", instance, f"{key} {value}\n")

    def check_health(self) -> str:
        return self.client.check_health()

    # Helpers

    def _scalar(self, query_name: str, host: Host, window: str) -> float:
        result = self.client.query(self._query(query_name, self._selector(HOST_LABEL, host.name), window))
        return _sample_value(result[0]) if result else 0.0

    @staticmethod
    def _selector(label: str, value: str) -> str:
        try:
            return build_label_matcher(label, value)
        except PromQLValidationError as e:
            raise ValueError(f"Invalid {label} value: {e}") from e

    @staticmethod
    def _query(name: str, selector: str = "", window: str = "1m") -> str:
        return PROMETHEUS_QUERIES[name].format(selector=selector, window=window)


def _sample_value(result: Dict[str, Any]) -> float:
    return float(result["value"][1])


def _sample_clock(result: Dict[str, Any]) -> int:
    return int(float(result["value"][0]))


def _stable_id(name: str) -> int:
    return zlib.crc32(name.encode("utf-8"))
