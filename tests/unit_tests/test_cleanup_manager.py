from unittest.mock import MagicMock

import pytest

from vm_scaling.aws.autoscaling import AutoScalingGroupManager
from vm_scaling.aws.cloudwatch import AlarmManager
from vm_scaling.aws.ec2 import EC2Manager
from vm_scaling.aws.elb import LoadBalancerManager
from vm_scaling.cleanup.cleanup_manager import CleanupManager
from vm_scaling.tasks.autoscaling import ResourceConfig


@pytest.fixture
def managers():
    calls = MagicMock()
    calls.alarms.delete_alarms.return_value = ["task2-high-cpu-alarm", "task2-low-cpu-alarm"]
    calls.asg.delete_auto_scaling_group.return_value = True
    calls.elb.delete_load_balancer.return_value = True
    calls.elb.delete_target_group.return_value = True
    calls.elb.find_load_balancer.return_value = {"LoadBalancerArn": "arn:found-lb"}
    calls.elb.find_target_group_arn.return_value = "arn:found-tg"
    calls.ec2.delete_launch_template.return_value = True
    calls.ec2.terminate_instances.side_effect = lambda ids: [i for i in ids if i]
    calls.ec2.delete_security_group.return_value = True
    calls.ec2.find_project_instances.return_value = ["i-1", "i-2"]
    return calls


def _manager(autoscaling_config, settings, managers):
    return CleanupManager(
        autoscaling_config,
        settings,
        ec2=managers.ec2,
        load_balancers=managers.elb,
        auto_scaling=managers.asg,
        alarms=managers.alarms,
        sleep=managers.sleep,
    )


def _order(managers):
    return [name for name, _, _ in managers.mock_calls
            if not name.startswith(("elb.find", "ec2.find")) and "__" not in name]


def test_injected_managers_are_not_truth_tested(autoscaling_config, settings, managers):
    _manager(autoscaling_config, settings, managers)

    assert [name for name, _, _ in managers.mock_calls] == []


def test_teardown_order(autoscaling_config, settings, managers):
    settings.load_balancer_release_wait = 30
    settings.instance_release_wait = 60
    resources = ResourceConfig(
        load_balancer_arn="arn:lb", target_group_arn="arn:tg", load_generator_id="i-lg")

    report = _manager(autoscaling_config, settings, managers).teardown(resources)

    assert report["status"] == "success"
    assert report["errors"] == []
    assert _order(managers) == [
        "alarms.delete_alarms",
        "asg.delete_auto_scaling_group",
        "elb.delete_load_balancer",
        "sleep",
        "elb.delete_target_group",
        "ec2.delete_launch_template",
        "ec2.terminate_instances",
        "sleep",
        "ec2.delete_security_group",
        "ec2.delete_security_group",
    ]
    managers.sleep.assert_any_call(30)
    managers.sleep.assert_any_call(60)
    managers.elb.delete_load_balancer.assert_called_once_with("arn:lb")
    managers.elb.delete_target_group.assert_called_once_with("arn:tg")
    managers.ec2.terminate_instances.assert_called_once_with(["i-lg"])
    deleted = [c.args[0] for c in managers.ec2.delete_security_group.call_args_list]
    assert deleted == ["elb-asg-security-group", "lg-security-group"]


def test_teardown_continues_after_failures(autoscaling_config, settings, managers):
    managers.alarms.delete_alarms.side_effect = RuntimeError("throttled")
    managers.elb.delete_load_balancer.side_effect = RuntimeError("access denied")

    report = _manager(autoscaling_config, settings, managers).teardown(ResourceConfig(
        load_balancer_arn="arn:lb", target_group_arn="arn:tg", load_generator_id="i-lg"))

    assert report["status"] == "partial"
    assert len(report["errors"]) == 2
    assert report["results"]["CloudWatch Alarms"]["status"] == "error"
    managers.elb.delete_target_group.assert_called_once()
    assert managers.ec2.delete_security_group.call_count == 2


def test_teardown_looks_up_unrecorded_arns(autoscaling_config, settings, managers):
    _manager(autoscaling_config, settings, managers).teardown(ResourceConfig())

    managers.elb.find_load_balancer.assert_called_once_with("asg-load-balancer")
    managers.elb.delete_load_balancer.assert_called_once_with("arn:found-lb")
    managers.elb.find_target_group_arn.assert_called_once_with("asg-target-group")
    managers.elb.delete_target_group.assert_called_once_with("arn:found-tg")


def test_waits_are_skipped_when_nothing_was_released(autoscaling_config, settings, managers):
    managers.asg.delete_auto_scaling_group.return_value = False
    managers.elb.find_load_balancer.return_value = None

    report = _manager(autoscaling_config, settings, managers).teardown(ResourceConfig())

    managers.sleep.assert_not_called()
    assert report["results"]["Load Balancer Release"] == {"status": "skipped"}
    assert report["results"]["Instance Release"] == {"status": "skipped"}


def test_cleanup_all_sweeps_project_instances(autoscaling_config, settings, managers):
    report = _manager(autoscaling_config, settings, managers).cleanup_all()

    assert report["cleanup_type"] == "sweep"
    managers.ec2.terminate_instances.assert_called_once_with(["i-1", "i-2"])
    deleted = [c.args[0] for c in managers.ec2.delete_security_group.call_args_list]
    assert deleted == ["elb-asg-security-group", "lg-security-group", "web-service-security-group"]


def test_verify_reports_remaining(autoscaling_config, settings, managers):
    managers.asg.describe_group.return_value = None
    managers.alarms.find_alarms.return_value = []
    managers.elb.find_load_balancer.return_value = None
    managers.elb.find_target_group_arn.return_value = None
    managers.ec2.find_launch_template_id.return_value = None
    managers.ec2.find_security_group_id.side_effect = lambda name: "sg-1" if name == "lg-security-group" else None
    managers.ec2.find_project_instances.return_value = []

    remaining = _manager(autoscaling_config, settings, managers).verify()

    assert remaining["security_groups"] == ["lg-security-group"]
    assert remaining["clean"] is False


def test_cleanup_all_against_moto(autoscaling_config, settings, ec2_client, elbv2_client,
                                  autoscaling_client, cloudwatch_client, default_vpc_id, ami_id):
    ec2 = EC2Manager(settings, ec2_client=ec2_client)
    elb = LoadBalancerManager(settings, elbv2_client=elbv2_client)
    asg = AutoScalingGroupManager(settings, autoscaling_client=autoscaling_client)
    alarms = AlarmManager(settings, cloudwatch_client=cloudwatch_client)

    subnet_ids = ec2.get_subnet_ids(default_vpc_id)
    sg_id = ec2.get_or_create_http_security_group("elb-asg-security-group", default_vpc_id)
    ec2.get_or_create_launch_template("asg-launch-template", ami_id, "t2.micro", sg_id)
    tg_arn = elb.get_or_create_target_group("asg-target-group", default_vpc_id)
    elb.get_or_create_load_balancer("asg-load-balancer", subnet_ids, sg_id, tg_arn)
    asg.get_or_create_auto_scaling_group(autoscaling_config, subnet_ids, tg_arn)
    scale_out, scale_in = asg.put_scaling_policies(autoscaling_config)
    alarms.create_scale_out_alarm(autoscaling_config, scale_out)
    alarms.create_scale_in_alarm(autoscaling_config, scale_in)

    manager = CleanupManager(autoscaling_config, settings, ec2=ec2, load_balancers=elb,
                             auto_scaling=asg, alarms=alarms, sleep=lambda _: None)
    manager.cleanup_all()
    remaining = manager.verify()

    assert remaining["auto_scaling_group"] is False
    assert remaining["alarms"] == []
    assert remaining["load_balancer"] is False
    assert remaining["launch_template"] is False
