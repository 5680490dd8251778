"""
constraint_samplers/kinematic_constraints.py - 已配置的运动学约束

把输入约束 (models.JointConstraint / PositionConstraint / OrientationConstraint)
对照机器人模型与坐标变换快照进行解析：
- KinematicJointConstraint: 关节变量存在性、容差合法性、连续关节目标值归一化
- KinematicPositionConstraint: 约束区域换算到规划坐标系，提供体积与区域内采样
- KinematicOrientationConstraint: 目标姿态换算到规划坐标系，提供容差内姿态采样

configure() 失败返回 False（并记录警告），不抛异常。
"""

import logging
from typing import List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from .models import JointConstraint, OrientationConstraint, Pose, PositionConstraint
from .regions import ConstraintRegion
from .robot_model import RobotModel, RobotState
from .transforms import Transforms

logger = logging.getLogger(__name__)


def normalize_angle(angle: float) -> float:
    """把角度归一化到 (-pi, pi]"""
    a = float(np.fmod(angle + np.pi, 2.0 * np.pi))
    if a <= 0.0:
        a += 2.0 * np.pi
    return a - np.pi


class KinematicJointConstraint:
    """已解析的关节约束

    Args:
        robot_model: 机器人模型
    """

    def __init__(self, robot_model: RobotModel) -> None:
        self.robot_model = robot_model
        self.joint_variable_name: str = ""
        self.position: float = 0.0
        self.tolerance_above: float = 0.0
        self.tolerance_below: float = 0.0
        self.continuous: bool = False
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def lower(self) -> float:
        return self.position - self.tolerance_below

    @property
    def upper(self) -> float:
        return self.position + self.tolerance_above

    def configure(self, jc: JointConstraint) -> bool:
        """解析关节约束

        Returns:
            变量未知或容差为负时返回 False
        """
        self._enabled = False
        if not self.robot_model.has_variable(jc.joint_name):
            logger.warning("关节约束引用了未知关节变量 '%s'", jc.joint_name)
            return False
        if jc.tolerance_above < 0.0 or jc.tolerance_below < 0.0:
            logger.warning("关节 '%s' 的约束容差必须非负 (above=%s, below=%s)",
                           jc.joint_name, jc.tolerance_above, jc.tolerance_below)
            return False

        bounds = self.robot_model.get_variable_bounds(jc.joint_name)
        self.joint_variable_name = jc.joint_name
        self.continuous = bounds.continuous
        self.position = (normalize_angle(jc.position) if bounds.continuous
                         else float(jc.position))
        self.tolerance_above = float(jc.tolerance_above)
        self.tolerance_below = float(jc.tolerance_below)
        self._enabled = True
        return True

    def decide(self, state: RobotState, tol: float = 1e-9) -> bool:
        """检查状态是否满足该约束"""
        if not self._enabled:
            return True
        value = state.get_variable_position(self.joint_variable_name)
        diff = value - self.position
        if self.continuous:
            diff = normalize_angle(diff)
        return -self.tolerance_below - tol <= diff <= self.tolerance_above + tol

    def __repr__(self) -> str:
        return (f"KinematicJointConstraint({self.joint_variable_name!r}, "
                f"[{self.lower:.4f}, {self.upper:.4f}])")


class KinematicPositionConstraint:
    """已解析的位置约束（区域在规划坐标系下）

    Args:
        robot_model: 机器人模型
    """

    def __init__(self, robot_model: RobotModel) -> None:
        self.robot_model = robot_model
        self.link_name: str = ""
        self.regions: List[ConstraintRegion] = []
        self.offset = np.zeros(3)
        self.has_offset = False
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def configure(self, pc: PositionConstraint, transforms: Transforms) -> bool:
        """解析位置约束并冻结到规划坐标系

        Returns:
            连杆未知、无约束区域或坐标系查找失败时返回 False
        """
        self._enabled = False
        if not self.robot_model.has_link(pc.link_name):
            logger.warning("位置约束引用了未知连杆 '%s'", pc.link_name)
            return False
        if not pc.constraint_regions:
            logger.warning("连杆 '%s' 的位置约束没有约束区域", pc.link_name)
            return False
        try:
            T = transforms.get_transform(pc.frame_id)
        except KeyError:
            logger.warning("位置约束 (连杆 '%s') 的坐标系 '%s' 无法解析",
                           pc.link_name, pc.frame_id)
            return False

        self.link_name = pc.link_name
        self.regions = [r.transformed(T) for r in pc.constraint_regions]
        self.offset = pc.target_point_offset.copy()
        self.has_offset = bool(np.linalg.norm(self.offset) > 1e-9)
        self._enabled = True
        return True

    def volume(self) -> float:
        """所有约束区域的体积之和"""
        return float(sum(r.volume() for r in self.regions))

    def sample_point(
        self,
        rng: np.random.Generator,
        max_attempts: int = 100,
    ) -> Optional[np.ndarray]:
        """均匀选择一个区域并在其中采样目标点（规划坐标系）"""
        if not self.regions:
            return None
        region = self.regions[int(rng.integers(0, len(self.regions)))]
        return region.sample_point(rng, max_attempts)

    def decide(self, link_pose: Pose) -> bool:
        """检查连杆位姿下的目标点是否落在任一区域内"""
        if not self._enabled:
            return True
        point = link_pose.position + link_pose.rotation.apply(self.offset)
        return any(r.contains(point) for r in self.regions)

    def __repr__(self) -> str:
        return (f"KinematicPositionConstraint({self.link_name!r}, "
                f"n_regions={len(self.regions)}, volume={self.volume():.6g})")


class KinematicOrientationConstraint:
    """已解析的姿态约束（目标姿态在规划坐标系下）

    容差按绕目标姿态自身 X / Y / Z 轴的转角 (intrinsic XYZ) 解释。

    Args:
        robot_model: 机器人模型
    """

    def __init__(self, robot_model: RobotModel) -> None:
        self.robot_model = robot_model
        self.link_name: str = ""
        self.desired_rotation: Rotation = Rotation.identity()
        self.tolerances = np.zeros(3)
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def x_axis_tolerance(self) -> float:
        return float(self.tolerances[0])

    @property
    def y_axis_tolerance(self) -> float:
        return float(self.tolerances[1])

    @property
    def z_axis_tolerance(self) -> float:
        return float(self.tolerances[2])

    def configure(self, oc: OrientationConstraint, transforms: Transforms) -> bool:
        """解析姿态约束并冻结到规划坐标系

        Returns:
            连杆未知、四元数非法或坐标系查找失败时返回 False
        """
        self._enabled = False
        if not self.robot_model.has_link(oc.link_name):
            logger.warning("姿态约束引用了未知连杆 '%s'", oc.link_name)
            return False
        if np.linalg.norm(oc.orientation) < 1e-12:
            logger.warning("连杆 '%s' 的姿态约束四元数为零", oc.link_name)
            return False
        try:
            T = transforms.get_transform(oc.frame_id)
        except KeyError:
            logger.warning("姿态约束 (连杆 '%s') 的坐标系 '%s' 无法解析",
                           oc.link_name, oc.frame_id)
            return False

        self.link_name = oc.link_name
        self.desired_rotation = (Rotation.from_matrix(T[:3, :3])
                                 * Rotation.from_quat(oc.orientation))
        self.tolerances = np.abs(np.array([
            oc.absolute_x_axis_tolerance,
            oc.absolute_y_axis_tolerance,
            oc.absolute_z_axis_tolerance,
        ], dtype=np.float64))
        self._enabled = True
        return True

    def volume(self) -> float:
        """三轴容差之积"""
        return float(np.prod(self.tolerances))

    def sample_orientation(self, rng: np.random.Generator) -> np.ndarray:
        """在容差范围内采样姿态，返回四元数 [x, y, z, w]"""
        angles = rng.uniform(-self.tolerances, self.tolerances)
        diff = Rotation.from_euler('XYZ', angles)
        return (self.desired_rotation * diff).as_quat()

    def decide(self, link_pose: Pose, tol: float = 1e-9) -> bool:
        """检查连杆姿态是否在容差内"""
        if not self._enabled:
            return True
        diff = self.desired_rotation.inv() * link_pose.rotation
        angles = np.abs(diff.as_euler('XYZ'))
        return bool(np.all(angles <= self.tolerances + tol))

    def __repr__(self) -> str:
        return (f"KinematicOrientationConstraint({self.link_name!r}, "
                f"tol={self.tolerances.tolist()})")
