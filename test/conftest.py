"""test/conftest.py - 共享 fixtures"""
import math

import pytest
from scipy.spatial.transform import Rotation

from constraint_samplers import (
    Constraints,
    PlanningScene,
    Pose,
    RobotModel,
    SamplerConfig,
    Transforms,
    VariableBounds,
)

from helpers import StubSolver, arm_ik, dual_link_pose, hand_ik, joint, six_dof_link_pose


# ==================== 6DOF 机械臂 ====================

@pytest.fixture
def six_dof_model():
    """6DOF 机械臂，组 'arm' 带 StubSolver（j6 为连续关节）"""
    bounds = {
        "j1": VariableBounds(-2.0, 2.0),
        "j2": VariableBounds(-2.0, 2.0),
        "j3": VariableBounds(-2.0, 2.0),
        "j4": VariableBounds(-math.pi, math.pi),
        "j5": VariableBounds(-math.pi, math.pi),
        "j6": VariableBounds(-math.pi, math.pi, continuous=True),
    }
    model = RobotModel("six_dof", bounds, ["base", "L1", "L2", "wrist", "tool"],
                       link_pose_fn=six_dof_link_pose)
    model.add_group("arm", list(bounds), ["L1", "L2", "wrist", "tool"],
                    solver=StubSolver())
    return model


@pytest.fixture
def table_transforms():
    """规划坐标系 'world' + 绕 z 轴旋转 90° 的 'table' 坐标系"""
    tf = Transforms("world")
    tf.set_transform("table", Pose(
        position=[0.5, 0.0, 0.2],
        orientation=Rotation.from_euler('z', 90, degrees=True).as_quat(),
    ))
    return tf


@pytest.fixture
def six_dof_scene(six_dof_model, table_transforms):
    return PlanningScene(six_dof_model, table_transforms, name="six_dof")


@pytest.fixture
def seeded_config():
    return SamplerConfig(random_seed=42)


@pytest.fixture
def full_joint_constraints():
    """6 个关节各一个约束"""
    return Constraints(name="full_joint", joint_constraints=[
        joint("j1", 0.5, 0.1),
        joint("j2", -0.5, 0.2, 0.05),
        joint("j3", 1.9, 0.5),
        joint("j4", 0.0, 0.3),
        joint("j5", 3.0, 0.5),
        joint("j6", 3.1, 0.2),
    ])


# ==================== 双子组机器人 ====================

@pytest.fixture
def dual_model():
    """父组 'both' 无求解函数，子组 'arm' / 'hand' 各带求解函数"""
    bounds = {
        "a1": VariableBounds(-2.0, 2.0),
        "a2": VariableBounds(-2.0, 2.0),
        "a3": VariableBounds(-2.0, 2.0),
        "h1": VariableBounds(-math.pi, math.pi),
        "h2": VariableBounds(-math.pi, math.pi),
        "h3": VariableBounds(-math.pi, math.pi),
    }
    model = RobotModel("dual", bounds, ["base", "arm_link", "arm_tip", "hand_tip"],
                       link_pose_fn=dual_link_pose)
    model.add_group("arm", ["a1", "a2", "a3"], ["arm_link", "arm_tip"], solver=arm_ik)
    model.add_group("hand", ["h1", "h2", "h3"], ["hand_tip"], solver=hand_ik)
    model.add_group("both", list(bounds), ["arm_link", "arm_tip", "hand_tip"],
                    subgroup_names=["arm", "hand"])
    return model


@pytest.fixture
def dual_scene(dual_model):
    return PlanningScene(dual_model, Transforms("world"), name="dual")
