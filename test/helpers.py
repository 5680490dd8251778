"""test/helpers.py - 测试用玩具运动学与约束构造函数

IK / FK 都是解析的恒等映射，便于断言采样结果：

- 6DOF 机械臂：关节值 = [位置 xyz, 旋转向量 rxyz]，所有连杆按同一映射求解
- 双子组机器人："arm" 子组 (a1..a3 = arm_tip 位置)，
  "hand" 子组 (h1..h3 = hand_tip 姿态旋转向量)
"""
from typing import List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from constraint_samplers import (
    Box,
    ConstraintRegion,
    JointConstraint,
    OrientationConstraint,
    Pose,
    PositionConstraint,
    RobotState,
)


def pose_to_values(pose: Pose) -> np.ndarray:
    return np.concatenate([pose.position, pose.rotation.as_rotvec()])


def values_to_pose(values) -> Pose:
    values = np.asarray(values, dtype=np.float64)
    return Pose(position=values[:3],
                orientation=Rotation.from_rotvec(values[3:6]).as_quat())


class StubSolver:
    """解析 IK：返回 [位置, 旋转向量]，位置超出 ±2 时失败

    Attributes:
        calls: 每次调用的 (link_name, pose, seed)
        fail_first: 前 n 次调用直接返回 None
        always_fail: 总是返回 None
    """

    def __init__(self, fail_first: int = 0, always_fail: bool = False) -> None:
        self.calls: List[tuple] = []
        self.fail_first = fail_first
        self.always_fail = always_fail

    def __call__(self, link_name: str, pose: Pose, seed: np.ndarray) -> Optional[np.ndarray]:
        self.calls.append((link_name, pose, seed))
        if self.always_fail or len(self.calls) <= self.fail_first:
            return None
        if np.any(np.abs(pose.position) > 2.0):
            return None
        return pose_to_values(pose)


def six_dof_link_pose(link_name: str, state: RobotState) -> Pose:
    group = state.model.get_joint_model_group("arm")
    return values_to_pose(state.get_group_positions(group))


def dual_link_pose(link_name: str, state: RobotState) -> Pose:
    a = state.get_group_positions(state.model.get_joint_model_group("arm"))
    h = state.get_group_positions(state.model.get_joint_model_group("hand"))
    if link_name == "hand_tip":
        return Pose(position=a + np.array([0.0, 0.0, 0.1]),
                    orientation=Rotation.from_rotvec(h).as_quat())
    return Pose(position=a)


def arm_ik(link_name: str, pose: Pose, seed: np.ndarray) -> Optional[np.ndarray]:
    if np.any(np.abs(pose.position) > 2.0):
        return None
    return pose.position.copy()


def hand_ik(link_name: str, pose: Pose, seed: np.ndarray) -> Optional[np.ndarray]:
    return pose.rotation.as_rotvec()


# ==================== 约束构造 ====================

def box_position(link: str, center, dims, frame: str = "world", offset=(0.0, 0.0, 0.0)):
    return PositionConstraint(
        link_name=link,
        frame_id=frame,
        constraint_regions=[ConstraintRegion.at(Box(dims), position=center)],
        target_point_offset=offset,
    )


def orientation(link: str, tol, quat=(0.0, 0.0, 0.0, 1.0), frame: str = "world"):
    return OrientationConstraint(
        link_name=link,
        frame_id=frame,
        orientation=quat,
        absolute_x_axis_tolerance=tol[0],
        absolute_y_axis_tolerance=tol[1],
        absolute_z_axis_tolerance=tol[2],
    )


def joint(name: str, position: float, above: float, below: Optional[float] = None):
    return JointConstraint(name, position, above, above if below is None else below)
