"""
samplers/ik_sampler.py - 基于逆运动学的任务空间约束采样器

采样流程（每次 sample 最多 max_attempts 轮）：
1. 在位置约束区域内均匀采样目标点（无位置约束时取种子状态下连杆的当前位置）
2. 在姿态容差内采样目标姿态（无姿态约束时采样随机姿态）
3. 若位置约束带目标点偏移，从目标点减去旋转后的偏移得到连杆原点
4. 以 state 中本组当前关节值为种子调用 IK 求解函数
5. 求解成功且满足接管的关节区间时写回本组全部变量

采样体积 (sampling volume) 在 configure 时计算一次：
    位置区域体积之和 × 三轴姿态容差之积，缺失的一项记为 1。
它只用于 ConstraintSamplerManager 在候选之间取舍，不是概率。
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from ..kinematic_constraints import (
    KinematicOrientationConstraint,
    KinematicPositionConstraint,
    normalize_angle,
)
from ..models import Constraints, Pose, SamplerConfig
from ..robot_model import RobotState
from ..transforms import PlanningScene
from .base import ConstraintSampler

logger = logging.getLogger(__name__)


@dataclass
class IKSamplingPose:
    """IK 采样目标：同一连杆上至多一个位置约束 + 至多一个姿态约束"""
    position_constraint: Optional[KinematicPositionConstraint] = None
    orientation_constraint: Optional[KinematicOrientationConstraint] = None

    @property
    def link_name(self) -> Optional[str]:
        if self.position_constraint is not None:
            return self.position_constraint.link_name
        if self.orientation_constraint is not None:
            return self.orientation_constraint.link_name
        return None

    def is_empty(self) -> bool:
        return self.position_constraint is None and self.orientation_constraint is None

    def is_consistent(self) -> bool:
        """位置与姿态约束（若都存在）必须作用于同一连杆"""
        if self.position_constraint is None or self.orientation_constraint is None:
            return True
        return (self.position_constraint.link_name
                == self.orientation_constraint.link_name)


def _random_quaternion(rng: np.random.Generator) -> np.ndarray:
    q = rng.normal(size=4)
    return q / np.linalg.norm(q)


class IKConstraintSampler(ConstraintSampler):
    """IK 约束采样器

    Args:
        scene: 规划场景
        group_name: 关节组名（需带 IK 求解函数）
        config: 采样参数
        rng: 随机数生成器

    Example:
        >>> sampler = IKConstraintSampler(scene, "arm")
        >>> sampler.configure(constraints)
        True
        >>> volume = sampler.get_sampling_volume()
        >>> ok = sampler.sample(state)
    """

    def __init__(
        self,
        scene: PlanningScene,
        group_name: str,
        config: Optional[SamplerConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        super().__init__(scene, group_name, config, rng)
        self._sampling_pose = IKSamplingPose()
        self._volume = 0.0
        self._joint_filters: Dict[str, Tuple[float, float]] = {}
        self._filter_pos = np.zeros(0, dtype=np.intp)
        self._filter_mid = np.zeros(0)
        self._filter_half = np.zeros(0)
        self._filter_continuous = np.zeros(0, dtype=bool)

    @property
    def link_name(self) -> Optional[str]:
        return self._sampling_pose.link_name

    @property
    def joint_filters(self) -> Dict[str, Tuple[float, float]]:
        """已接管的关节区间 {变量名: (lo, hi)}"""
        return dict(self._joint_filters)

    def get_position_constraint(self) -> Optional[KinematicPositionConstraint]:
        return self._sampling_pose.position_constraint

    def get_orientation_constraint(self) -> Optional[KinematicOrientationConstraint]:
        return self._sampling_pose.orientation_constraint

    def get_sampling_volume(self) -> float:
        return self._volume

    def can_service(self, constraints: Constraints) -> bool:
        if self.jmg.solver is None:
            return False
        return (any(self.jmg.has_link_model(pc.link_name)
                    for pc in constraints.position_constraints)
                or any(self.jmg.has_link_model(oc.link_name)
                       for oc in constraints.orientation_constraints))

    def configure(self, constraints: Constraints) -> bool:
        """从约束集挑选一个 IK 目标并配置

        优先顺序：同一连杆上的位置 + 姿态约束对 > 单独位置约束 > 单独姿态约束，
        同类中按输入顺序。
        """
        model = self.scene.get_robot_model()
        tf = self.scene.get_transforms()

        for pc_msg in constraints.position_constraints:
            for oc_msg in constraints.orientation_constraints:
                if pc_msg.link_name != oc_msg.link_name:
                    continue
                pc = KinematicPositionConstraint(model)
                oc = KinematicOrientationConstraint(model)
                if (pc.configure(pc_msg, tf) and oc.configure(oc_msg, tf)
                        and self.configure_pose(IKSamplingPose(pc, oc))):
                    return True

        for pc_msg in constraints.position_constraints:
            pc = KinematicPositionConstraint(model)
            if pc.configure(pc_msg, tf) and self.configure_pose(IKSamplingPose(pc)):
                return True

        for oc_msg in constraints.orientation_constraints:
            oc = KinematicOrientationConstraint(model)
            if (oc.configure(oc_msg, tf)
                    and self.configure_pose(IKSamplingPose(orientation_constraint=oc))):
                return True
        return False

    def configure_pose(self, sp: IKSamplingPose) -> bool:
        """用已解析的 IK 目标配置采样器

        Returns:
            组无 IK 求解函数、目标为空或跨连杆、连杆不属于本组、
            或仅姿态约束而模型缺少正运动学钩子时返回 False
        """
        self._is_valid = False
        self._sampling_pose = IKSamplingPose()
        self._volume = 0.0
        self._joint_filters = {}
        self._rebuild_filters()
        self._set_covered(())

        if self.jmg.solver is None:
            logger.warning("关节组 '%s' 没有 IK 求解函数", self.group_name)
            return False
        if sp.is_empty():
            logger.warning("关节组 '%s': IK 采样目标为空", self.group_name)
            return False
        if not sp.is_consistent():
            logger.warning("关节组 '%s': 位置约束与姿态约束作用于不同连杆 ('%s' / '%s')",
                           self.group_name, sp.position_constraint.link_name,
                           sp.orientation_constraint.link_name)
            return False
        for c in (sp.position_constraint, sp.orientation_constraint):
            if c is not None and not c.enabled:
                logger.warning("关节组 '%s': IK 采样目标包含未配置成功的约束",
                               self.group_name)
                return False
        link = sp.link_name
        if not self.jmg.has_link_model(link):
            logger.warning("连杆 '%s' 不属于关节组 '%s'", link, self.group_name)
            return False
        if (sp.position_constraint is None
                and self.scene.get_robot_model().link_pose_fn is None):
            logger.warning("连杆 '%s' 仅有姿态约束，但机器人模型没有正运动学钩子",
                           link)
            return False

        self._sampling_pose = sp
        self._volume = self._compute_sampling_volume(sp)
        self._set_covered(self.jmg.variable_names)
        self._is_valid = True
        logger.debug("关节组 '%s': IK 采样器配置完成, 连杆 '%s', 采样体积 %.6g",
                     self.group_name, link, self._volume)
        return True

    @staticmethod
    def _compute_sampling_volume(sp: IKSamplingPose) -> float:
        v = 1.0
        if sp.position_constraint is not None:
            v *= sp.position_constraint.volume()
        if sp.orientation_constraint is not None:
            v *= sp.orientation_constraint.volume()
        return v

    def absorb_joint_bounds(self, bounds: Dict[str, Tuple[float, float]]) -> Set[str]:
        """把本组变量上的关节区间作为 IK 解的筛选条件"""
        absorbed: Set[str] = set()
        for name, (lo, hi) in bounds.items():
            if name not in self._covered:
                continue
            if name in self._joint_filters:
                old_lo, old_hi = self._joint_filters[name]
                lo, hi = max(lo, old_lo), min(hi, old_hi)
            self._joint_filters[name] = (lo, hi)
            absorbed.add(name)
        if absorbed:
            self._rebuild_filters()
        return absorbed

    def _rebuild_filters(self) -> None:
        names: List[str] = list(self._joint_filters.keys())
        pos = {n: i for i, n in enumerate(self.jmg.variable_names)}
        self._filter_pos = np.array([pos[n] for n in names], dtype=np.intp)
        lo = np.array([self._joint_filters[n][0] for n in names])
        hi = np.array([self._joint_filters[n][1] for n in names])
        self._filter_mid = (lo + hi) / 2.0
        self._filter_half = (hi - lo) / 2.0
        self._filter_continuous = np.array(
            [self.jmg.get_variable_bounds(n).continuous for n in names], dtype=bool)

    def _passes_joint_filters(self, solution: np.ndarray) -> bool:
        if not self._joint_filters:
            return True
        diff = solution[self._filter_pos] - self._filter_mid
        for i in np.flatnonzero(self._filter_continuous):
            diff[i] = normalize_angle(diff[i])
        return bool(np.all(np.abs(diff)
                           <= self._filter_half + self.config.joint_bound_tolerance))

    def sample_pose(self, state: RobotState) -> Optional[Pose]:
        """采样一个 IK 目标位姿（规划坐标系，连杆原点）

        Returns:
            区域内拒绝采样失败时返回 None
        """
        pc = self._sampling_pose.position_constraint
        oc = self._sampling_pose.orientation_constraint

        if pc is not None:
            pos = pc.sample_point(self._rng, self.config.max_region_sample_attempts)
            if pos is None:
                return None
        else:
            link_pose_fn = self.scene.get_robot_model().link_pose_fn
            pos = link_pose_fn(self.link_name, state).position.copy()

        if oc is not None:
            quat = oc.sample_orientation(self._rng)
        else:
            quat = _random_quaternion(self._rng)

        if pc is not None and pc.has_offset:
            pos = pos - Rotation.from_quat(quat).apply(pc.offset)
        return Pose(position=pos, orientation=quat)

    def _sample(self, state: RobotState, max_attempts: int) -> bool:
        seed = state.get_group_positions(self.jmg)
        link = self.link_name
        for attempt in range(max_attempts):
            pose = self.sample_pose(state)
            if pose is None:
                logger.debug("连杆 '%s': 第 %d 次尝试未能在约束区域内采样到目标点",
                             link, attempt)
                continue
            solution = self.jmg.solver(link, pose, seed.copy())
            if solution is None:
                continue
            solution = np.asarray(solution, dtype=np.float64)
            if solution.shape != (self.jmg.variable_count,):
                raise ValueError(
                    f"关节组 '{self.group_name}' 的 IK 求解函数返回了形状 "
                    f"{solution.shape}，期望 ({self.jmg.variable_count},)")
            if not self._passes_joint_filters(solution):
                continue
            state.set_group_positions(self.jmg, solution)
            return True
        return False
