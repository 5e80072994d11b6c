# cli.py
import json
import logging
import sys

import click

from vm_scaling.cleanup.cleanup_manager import CleanupManager
from vm_scaling.config.lab_config import AutoScalingConfig, HorizontalScalingConfig, load_lab_config
from vm_scaling.config.settings import get_settings
from vm_scaling.tasks.autoscaling import AutoScalingTask
from vm_scaling.tasks.horizontal import HorizontalScalingTask

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@click.group()
@click.option("--log-level",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default=None,
              help="Logging level (defaults to LOG_LEVEL)")
def cli(log_level):
    """Provision, run and tear down the VM scaling labs"""
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)


def _load_autoscaling_config(path):
    return load_lab_config(path or get_settings().autoscaling_config_file, AutoScalingConfig)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Horizontal scaling JSON configuration")
@click.option("--teardown/--no-teardown", default=True,
              help="Terminate the instances and security groups when the test ends")
def horizontal(config_path, teardown):
    """Run the horizontal scaling test"""
    try:
        config = load_lab_config(config_path or get_settings().horizontal_config_file,
                                 HorizontalScalingConfig)
        result = HorizontalScalingTask(config).run(teardown=teardown)
    except Exception as e:
        logger.error(f"Horizontal scaling failed: {e}")
        print(f"❌ Horizontal scaling failed: {e}")
        sys.exit(1)

    print("✅ Horizontal scaling test finished")
    print(f"  Test id: {result.test_id}")
    print(f"  Web services: {len(result.web_service_ids)}")
    print(f"  Last rps: {result.final_rps}")


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Auto-scaling JSON configuration")
def autoscale(config_path):
    """Run the auto-scaling test"""
    try:
        config = _load_autoscaling_config(config_path)
        summary = AutoScalingTask(config).run()
    except Exception as e:
        logger.error(f"Auto-scaling failed: {e}")
        print(f"❌ Auto-scaling failed: {e}")
        sys.exit(1)

    print("✅ Auto-scaling test finished")
    print(f"  Warm-up test id: {summary['test_ids'].get('warmup')}")
    print(f"  Auto-scaling test id: {summary['test_ids'].get('autoscaling')}")
    print(f"  Teardown: {summary['teardown']['status']}")
    if summary['teardown']['status'] != 'success':
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Auto-scaling JSON configuration naming the resources")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def cleanup(config_path, yes):
    """Delete every resource the labs may have left behind"""
    if not yes:
        click.confirm("⚠️ This will DELETE all vm-scaling AWS resources. Continue?", abort=True)

    try:
        config = _load_autoscaling_config(config_path)
        report = CleanupManager(config).cleanup_all()
    except Exception as e:
        logger.error(f"Cleanup failed: {e}")
        print(f"❌ Cleanup failed: {e}")
        sys.exit(1)

    print(json.dumps(report, indent=2, default=str))
    if report["status"] != "success":
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Auto-scaling JSON configuration naming the resources")
def verify(config_path):
    """Check that no lab resources remain"""
    try:
        config = _load_autoscaling_config(config_path)
        remaining = CleanupManager(config).verify()
    except Exception as e:
        logger.error(f"Verification failed: {e}")
        print(f"❌ Verification failed: {e}")
        sys.exit(1)

    print(json.dumps(remaining, indent=2))
    if not remaining["clean"]:
        sys.exit(1)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  AWS Profile: {settings.aws_profile}")
    print(f"  Horizontal Config: {settings.horizontal_config_file}")
    print(f"  Auto-scaling Config: {settings.autoscaling_config_file}")
    print(f"  Project Tag: {settings.project_tag}")
    print(f"  RPS Target: {settings.rps_target}")
    print(f"  Launch Delay: {settings.launch_delay_seconds}s")
    print(f"  Test Log Dir: {settings.test_log_dir}")
    print(f"  Log Level: {settings.log_level}")


if __name__ == "__main__":
    cli()
