from unittest.mock import MagicMock

import pytest

from vm_scaling.exceptions import LoadGeneratorError, ResourceNotFoundError, ResourceTimeoutError
from vm_scaling.tasks.autoscaling import AutoScalingTask, ResourceConfig
from tests.consts import TEST_LOAD_BALANCER_DNS, TEST_LOAD_GENERATOR_DNS


@pytest.fixture
def managers():
    calls = MagicMock()

    ec2 = calls.ec2
    ec2.get_default_vpc.return_value = "vpc-1"
    ec2.get_subnet_ids.return_value = ["subnet-a", "subnet-b"]
    ec2.get_or_create_http_security_group.side_effect = lambda name, vpc_id: f"sg-{name}"
    ec2.get_or_create_launch_template.return_value = "lt-1"
    ec2.run_instance.return_value = "i-lg"
    ec2.wait_for_instance_ready.return_value = {
        "InstanceId": "i-lg", "PublicDnsName": TEST_LOAD_GENERATOR_DNS,
    }

    elb = calls.elb
    elb.get_or_create_target_group.return_value = "arn:tg"
    elb.get_or_create_load_balancer.return_value = {
        "LoadBalancerArn": "arn:lb", "DNSName": TEST_LOAD_BALANCER_DNS,
    }

    asg = calls.asg
    asg.get_or_create_auto_scaling_group.return_value = "task2"
    asg.put_scaling_policies.return_value = ("arn:out", "arn:in")

    alarms = calls.alarms
    alarms.create_scale_out_alarm.return_value = "task2-high-cpu-alarm"
    alarms.create_scale_in_alarm.return_value = "task2-low-cpu-alarm"

    cleanup = calls.cleanup
    cleanup.teardown.return_value = {"status": "success", "errors": [], "results": {}}

    load_generator = calls.load_generator
    load_generator.start_warmup.return_value = "100"
    load_generator.start_autoscaling_test.return_value = "101"
    return calls


def _task(autoscaling_config, settings, managers):
    return AutoScalingTask(
        autoscaling_config,
        settings,
        ec2=managers.ec2,
        load_balancers=managers.elb,
        auto_scaling=managers.asg,
        alarms=managers.alarms,
        cleanup=managers.cleanup,
        load_generator_factory=lambda dns: managers.load_generator,
        sleep=lambda _: None,
    )


def _called(managers):
    return [name for name, _, _ in managers.mock_calls if not name.startswith("cleanup")]


def test_run_provisions_in_dependency_order(autoscaling_config, settings, managers):
    summary = _task(autoscaling_config, settings, managers).run()

    order = [name for name in _called(managers) if "get_or_create" in name
             or name in ("asg.put_scaling_policies", "alarms.create_scale_out_alarm",
                         "alarms.create_scale_in_alarm", "ec2.run_instance",
                         "ec2.wait_for_instance_ready")]
    assert order == [
        "ec2.get_or_create_http_security_group",
        "ec2.get_or_create_launch_template",
        "elb.get_or_create_target_group",
        "elb.get_or_create_load_balancer",
        "asg.get_or_create_auto_scaling_group",
        "asg.put_scaling_policies",
        "alarms.create_scale_out_alarm",
        "alarms.create_scale_in_alarm",
        "ec2.get_or_create_http_security_group",
        "ec2.run_instance",
        "ec2.wait_for_instance_ready",
    ]
    assert summary["test_ids"] == {"warmup": "100", "autoscaling": "101"}
    assert summary["resources"]["load_balancer_dns"] == TEST_LOAD_BALANCER_DNS
    assert summary["resources"]["alarm_names"] == ["task2-high-cpu-alarm", "task2-low-cpu-alarm"]
    assert summary["teardown"]["status"] == "success"


def test_alarms_point_at_their_policies(autoscaling_config, settings, managers):
    _task(autoscaling_config, settings, managers).run()

    managers.alarms.create_scale_out_alarm.assert_called_once_with(autoscaling_config, "arn:out")
    managers.alarms.create_scale_in_alarm.assert_called_once_with(autoscaling_config, "arn:in")


def test_tests_run_against_load_balancer(autoscaling_config, settings, managers):
    _task(autoscaling_config, settings, managers).run()

    lg_calls = [(name, args) for name, args, _ in managers.load_generator.mock_calls]
    assert lg_calls == [
        ("start_warmup", (TEST_LOAD_BALANCER_DNS,)),
        ("wait_for_test_end", ("100",)),
        ("start_autoscaling_test", (TEST_LOAD_BALANCER_DNS,)),
        ("wait_for_test_end", ("101",)),
    ]


def test_destroy_runs_when_test_fails(autoscaling_config, settings, managers):
    managers.load_generator.wait_for_test_end.side_effect = LoadGeneratorError("gone")
    task = _task(autoscaling_config, settings, managers)

    with pytest.raises(LoadGeneratorError):
        task.run()

    managers.cleanup.teardown.assert_called_once()
    resources = managers.cleanup.teardown.call_args.args[0]
    assert resources.load_balancer_arn == "arn:lb"
    assert resources.load_generator_id == "i-lg"


def test_destroy_runs_when_nothing_was_provisioned(autoscaling_config, settings, managers):
    managers.ec2.get_default_vpc.side_effect = ResourceNotFoundError("no default vpc")

    with pytest.raises(ResourceNotFoundError):
        _task(autoscaling_config, settings, managers).run()

    managers.cleanup.teardown.assert_called_once_with(ResourceConfig())


def test_partial_provisioning_is_recorded(autoscaling_config, settings, managers):
    managers.asg.get_or_create_auto_scaling_group.side_effect = RuntimeError("limit exceeded")

    with pytest.raises(RuntimeError):
        _task(autoscaling_config, settings, managers).run()

    resources = managers.cleanup.teardown.call_args.args[0]
    assert resources.target_group_arn == "arn:tg"
    assert resources.load_balancer_arn == "arn:lb"
    assert resources.auto_scaling_group_name is None
    assert resources.load_generator_id is None


def test_load_generator_that_never_gets_ready_is_torn_down(autoscaling_config, settings, managers):
    managers.ec2.wait_for_instance_ready.side_effect = ResourceTimeoutError("i-lg not ready")

    with pytest.raises(ResourceTimeoutError):
        _task(autoscaling_config, settings, managers).run()

    resources = managers.cleanup.teardown.call_args.args[0]
    assert resources.load_generator_id == "i-lg"
    assert resources.load_generator_dns is None
    managers.load_generator.start_warmup.assert_not_called()
