"""HTTP client for the load generator instance and its test logs."""
import configparser
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import requests

from vm_scaling.config.settings import Settings, get_settings
from vm_scaling.exceptions import LoadGeneratorError, ResourceTimeoutError
from vm_scaling.utils.decorators import retry

logger = logging.getLogger(__name__)

TEST_ID_PATTERN = re.compile(r'test\.([0-9]+)\.log')
RPS_SECTION_PATTERN = re.compile(r'^Current rps=([0-9.eE+-]+)$')
FINISHED_SECTION = 'Test finished'


@dataclass
class TestLog:
    """Parsed INI-style test log served by the load generator."""

    text: str
    sections: List[str] = field(default_factory=list)

    __test__ = False

    @classmethod
    def parse(cls, text: str) -> 'TestLog':
        parser = configparser.ConfigParser(strict=False, interpolation=None)
        try:
            parser.read_string(text)
        except configparser.Error as e:
            raise LoadGeneratorError(f"Malformed test log: {e}") from e

        # Keep repeated headers in file order, the parser merges them
        sections = []
        for line in text.splitlines():
            match = parser.SECTCRE.match(line.strip())
            if match:
                sections.append(match.group('header'))
        return cls(text=text, sections=sections)

    @property
    def is_finished(self) -> bool:
        return FINISHED_SECTION in self.sections

    @property
    def current_rps(self) -> float:
        """RPS reported by the most recent `Current rps` section, 0.0 if none."""
        rps = 0.0
        for section in self.sections:
            match = RPS_SECTION_PATTERN.match(section.strip())
            if match:
                try:
                    rps = float(match.group(1))
                except ValueError as e:
                    raise LoadGeneratorError(f"Malformed rps section: [{section}]") from e
        return rps


def extract_test_id(text: str) -> str:
    match = TEST_ID_PATTERN.search(text or '')
    if not match:
        raise LoadGeneratorError(f"No test id in load generator response: {text!r}")
    return match.group(1)


class LoadGeneratorClient:
    """Talks to the load generator web API at `http://<dns>`."""

    def __init__(self, dns: str, settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.dns = dns
        self.settings = settings if settings is not None else get_settings()
        self.session = session if session is not None else requests.Session()
        self._sleep = sleep
        self._clock = clock

    @property
    def base_url(self) -> str:
        return f"http://{self.dns}"

    def _get(self, path: str, **params) -> str:
        response = self.session.get(
            f"{self.base_url}{path}",
            params=params,
            timeout=self.settings.request_timeout
        )
        response.raise_for_status()
        return response.text

    def _start_test(self, path: str, dns: str) -> str:
        """Submit a test, retrying until the load generator accepts it."""
        submit = retry(
            max_attempts=self.settings.request_max_attempts,
            delay=self.settings.request_retry_delay,
            backoff=1.0,
            exceptions=(requests.RequestException,),
            logger_name=__name__,
            sleep=self._sleep,
        )(self._get)
        try:
            text = submit(path, dns=dns)
        except requests.RequestException as e:
            raise LoadGeneratorError(f"Load generator at {self.dns} did not accept {path}: {e}") from e

        test_id = extract_test_id(text)
        logger.info(f"Started {path} test {test_id} against {dns}")
        return test_id

    def start_horizontal_test(self, web_service_dns: str) -> str:
        return self._start_test('/test/horizontal', web_service_dns)

    def start_warmup(self, load_balancer_dns: str) -> str:
        return self._start_test('/warmup', load_balancer_dns)

    def start_autoscaling_test(self, load_balancer_dns: str) -> str:
        return self._start_test('/autoscaling', load_balancer_dns)

    def add_web_service(self, test_id: str, web_service_dns: str) -> bool:
        """Add a web service to a running horizontal test.

        Returns:
            True once added, False if the test finished first
        """
        max_attempts = self.settings.request_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                self._get('/test/horizontal/add', dns=web_service_dns)
                logger.info(f"Added web service {web_service_dns} to test {test_id}")
                return True
            except requests.RequestException as e:
                logger.debug(f"Adding {web_service_dns} failed "
                             f"(attempt {attempt}/{max_attempts}): {e}")

            try:
                if self.fetch_log(test_id).is_finished:
                    logger.info(f"Test {test_id} finished before {web_service_dns} was added")
                    return False
            except (requests.RequestException, LoadGeneratorError) as e:
                logger.debug(f"Could not check test {test_id} status: {e}")

            self._sleep(self.settings.request_retry_delay)

        raise LoadGeneratorError(
            f"Could not add {web_service_dns} after {max_attempts} attempts"
        )

    def fetch_log(self, test_id: str) -> TestLog:
        """Download the test log, save it locally and parse it."""
        name = f"test.{test_id}.log"
        text = self._get('/log', name=name)

        log_dir = Path(self.settings.test_log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        (log_dir / name).write_text(text, encoding='utf-8')

        return TestLog.parse(text)

    def wait_for_test_end(self, test_id: str) -> TestLog:
        """Poll the test log until it reports the test finished."""
        started = self._clock()
        while True:
            try:
                log = self.fetch_log(test_id)
                if log.is_finished:
                    logger.info(f"Test {test_id} finished")
                    return log
                logger.debug(f"Test {test_id} running, rps={log.current_rps}")
            except (requests.RequestException, LoadGeneratorError) as e:
                logger.warning(f"Fetching log of test {test_id} failed: {e}")

            if self._clock() - started > self.settings.max_test_duration:
                raise ResourceTimeoutError(
                    f"Test {test_id} did not finish within {self.settings.max_test_duration}s"
                )
            self._sleep(self.settings.log_poll_interval)
