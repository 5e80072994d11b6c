"""Horizontal scaling: add web services until the load generator reports the target RPS."""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import requests

from vm_scaling.aws.ec2 import EC2Manager
from vm_scaling.config.lab_config import HorizontalScalingConfig
from vm_scaling.config.settings import Settings, get_settings
from vm_scaling.exceptions import LoadGeneratorError, ResourceTimeoutError
from vm_scaling.load_generator import LoadGeneratorClient
from vm_scaling.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)


def should_scale_out(rps: float, seconds_since_last_launch: float,
                     rps_target: float, launch_delay: float) -> bool:
    """True when RPS is below target and the previous launch has had time to settle."""
    return rps < rps_target and seconds_since_last_launch >= launch_delay


@dataclass
class HorizontalScalingResult:
    test_id: Optional[str] = None
    load_generator_id: Optional[str] = None
    web_service_ids: List[str] = field(default_factory=list)
    final_rps: float = 0.0


class HorizontalScalingTask:
    """Launch a load generator and scale web services out by hand."""

    def __init__(self, config: HorizontalScalingConfig, settings: Optional[Settings] = None,
                 ec2: Optional[EC2Manager] = None,
                 load_generator_factory: Callable[[str], LoadGeneratorClient] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.settings = settings if settings is not None else get_settings()
        self.ec2 = ec2 if ec2 is not None else EC2Manager(self.settings, sleep=sleep)
        self.load_generator_factory = load_generator_factory or (
            lambda dns: LoadGeneratorClient(dns, self.settings, sleep=sleep, clock=clock)
        )
        self._sleep = sleep
        self._clock = clock

    @log_execution_time
    def run(self, teardown: bool = True) -> HorizontalScalingResult:
        result = HorizontalScalingResult()
        try:
            self._run(result)
        finally:
            if teardown:
                self.teardown(result)
        return result

    def _run(self, result: HorizontalScalingResult):
        vpc_id = self.ec2.get_default_vpc()
        lg_sg = self.ec2.get_or_create_http_security_group(
            self.settings.lg_security_group, vpc_id)
        ws_sg = self.ec2.get_or_create_http_security_group(
            self.settings.web_service_security_group, vpc_id)

        result.load_generator_id = self.ec2.run_instance(
            self.config.load_generator_ami, self.config.instance_type, lg_sg, 'load-generator')
        load_generator = self.ec2.wait_for_instance_ready(result.load_generator_id)

        web_service = self._launch_web_service(ws_sg, result)
        last_launch = self._clock()

        client = self.load_generator_factory(load_generator['PublicDnsName'])
        result.test_id = client.start_horizontal_test(web_service['PublicDnsName'])

        started = self._clock()
        while True:
            try:
                log = client.fetch_log(result.test_id)
            except (requests.RequestException, LoadGeneratorError) as e:
                logger.warning(f"Fetching log of test {result.test_id} failed: {e}")
                log = None

            if log is not None:
                result.final_rps = log.current_rps
                if log.is_finished:
                    break

                elapsed = self._clock() - last_launch
                if should_scale_out(result.final_rps, elapsed,
                                    self.settings.rps_target, self.settings.launch_delay_seconds):
                    logger.info(f"RPS {result.final_rps} below target {self.settings.rps_target}, "
                                "adding a web service")
                    web_service = self._launch_web_service(ws_sg, result)
                    if not client.add_web_service(result.test_id, web_service['PublicDnsName']):
                        break
                    last_launch = self._clock()

            if self._clock() - started > self.settings.max_test_duration:
                raise ResourceTimeoutError(
                    f"Test {result.test_id} did not finish within {self.settings.max_test_duration}s"
                )
            self._sleep(self.settings.log_poll_interval)

        logger.info(f"Horizontal test {result.test_id} finished with "
                    f"{len(result.web_service_ids)} web services, last rps={result.final_rps}")

    def _launch_web_service(self, security_group_id: str, result: HorizontalScalingResult):
        instance_id = self.ec2.run_instance(
            self.config.web_service_ami, self.config.instance_type, security_group_id,
            'web-service')
        result.web_service_ids.append(instance_id)
        return self.ec2.wait_for_instance_ready(instance_id)

    def teardown(self, result: HorizontalScalingResult):
        """Best-effort release of everything the run created."""
        instance_ids = [result.load_generator_id] + result.web_service_ids
        terminated = []
        try:
            terminated = self.ec2.terminate_instances(instance_ids)
        except Exception as e:
            logger.error(f"Failed to terminate instances {instance_ids}: {e}")

        if terminated:
            self._sleep(self.settings.instance_release_wait)

        for name in (self.settings.lg_security_group, self.settings.web_service_security_group):
            try:
                self.ec2.delete_security_group(name)
            except Exception as e:
                logger.error(f"Failed to delete security group {name}: {e}")
