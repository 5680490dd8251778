"""
constraint_samplers/manager.py - 约束采样器选择

ConstraintSamplerManager 为一个关节组和一组约束挑选并构造采样器：
先询问外部注册的 ConstraintSamplerAllocator（按注册顺序），
都不能处理时运行默认决策流程：

1. 解析关节组，未知组返回 None
2. 关节约束：覆盖全部组变量时直接返回 JointConstraintSampler；
   部分覆盖时暂存为候补
3. 整组 IK：同一连杆的位置 + 姿态约束对优先，其余连杆用单独的位置 / 姿态约束；
   每个连杆只保留采样体积严格更小的候选（相等时先到者保留）；
   多个连杆被约束时只保留全局采样体积最小的一个（整组 IK 每次只求解一个目标，
   其余连杆上的约束不由该采样器执行）
4. 子组：把位置 / 姿态约束分配给第一个包含其连杆的子组，对各子组递归选择，
   非空结果组合为 UnionConstraintSampler
5. 回退到候补关节采样器，否则返回 None

决策过程中的每个分支都通过 SelectionObserver 上报，决策逻辑本身不写日志。
"""

import logging
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .events import LoggingObserver, SelectionEvent, SelectionEventKind, SelectionObserver
from .kinematic_constraints import (
    KinematicJointConstraint,
    KinematicOrientationConstraint,
    KinematicPositionConstraint,
)
from .models import Constraints, SamplerConfig
from .robot_model import IKSolverFn, JointModelGroup, RobotModel
from .samplers.base import ConstraintSampler, ConstraintSamplerAllocator
from .samplers.ik_sampler import IKConstraintSampler, IKSamplingPose
from .samplers.joint_sampler import JointConstraintSampler
from .samplers.union_sampler import UnionConstraintSampler
from .transforms import PlanningScene

logger = logging.getLogger(__name__)

Kind = SelectionEventKind


class ConstraintSamplerManager:
    """约束采样器管理器

    Args:
        config: 传给所有新建采样器的参数
            （设定 random_seed 时，各采样器从同一 SeedSequence 派生互相独立的随机流）
        observer: 决策事件接收者（默认 LoggingObserver）

    Example:
        >>> manager = ConstraintSamplerManager()
        >>> sampler = manager.select_sampler(scene, "arm", constraints)
        >>> if sampler is not None and sampler.sample(state):
        ...     print(state)
    """

    def __init__(
        self,
        config: Optional[SamplerConfig] = None,
        observer: Optional[SelectionObserver] = None,
    ) -> None:
        self.config = config or SamplerConfig()
        self.observer = observer or LoggingObserver()
        self._allocators: List[ConstraintSamplerAllocator] = []
        self._seed_seq = self.config.make_seed_sequence()

    @property
    def allocators(self) -> List[ConstraintSamplerAllocator]:
        return list(self._allocators)

    def register_sampler_allocator(self, allocator: ConstraintSamplerAllocator) -> None:
        """注册外部采样器工厂（先注册者优先）"""
        self._allocators.append(allocator)
        logger.info("注册采样器工厂 %s (共 %d 个)",
                    type(allocator).__name__, len(self._allocators))

    def select_sampler(
        self,
        scene: PlanningScene,
        group_name: str,
        constraints: Constraints,
    ) -> Optional[ConstraintSampler]:
        """选择采样器：外部工厂优先，否则走默认决策流程"""
        for allocator in self._allocators:
            if allocator.can_service(scene, group_name, constraints):
                self._emit(Kind.EXTERNAL_ALLOCATOR, group_name,
                           f"由外部工厂 {type(allocator).__name__} 构造采样器")
                return allocator.alloc(scene, group_name, constraints)
        return self.select_default_sampler(scene, group_name, constraints)

    def select_default_sampler(
        self,
        scene: PlanningScene,
        group_name: str,
        constraints: Constraints,
    ) -> Optional[ConstraintSampler]:
        """默认决策流程

        Returns:
            采样器；没有任何约束适用于该组时返回 None
        """
        model = scene.get_robot_model()
        jmg = model.get_joint_model_group(group_name)
        if jmg is None:
            self._emit(Kind.UNKNOWN_GROUP, group_name, "机器人模型中没有该关节组")
            return None
        self._emit(Kind.SELECTION_STARTED, group_name, "开始选择约束采样器", details={
            'n_joint': len(constraints.joint_constraints),
            'n_position': len(constraints.position_constraints),
            'n_orientation': len(constraints.orientation_constraints),
        })

        joint_sampler: Optional[JointConstraintSampler] = None
        jcs: List[KinematicJointConstraint] = []
        if constraints.joint_constraints:
            full, jcs = self._collect_joint_constraints(model, jmg, constraints)
            if full:
                sampler = JointConstraintSampler(scene, group_name, self.config,
                                                 self._spawn_rng())
                if sampler.configure_joint_constraints(jcs):
                    self._emit(Kind.JOINT_FULL_COVERAGE, group_name,
                               "关节约束覆盖全部组变量，使用关节采样器")
                    return sampler
                self._emit(Kind.JOINT_CONFIGURE_FAILED, group_name,
                           "关节约束区间与上下限无交集")
                jcs = []
            elif jcs:
                sampler = JointConstraintSampler(scene, group_name, self.config,
                                                 self._spawn_rng())
                if sampler.configure_joint_constraints(jcs):
                    joint_sampler = sampler
                    self._emit(Kind.JOINT_PARTIAL_COVERAGE, group_name,
                               "关节约束只覆盖部分组变量，暂存关节采样器并继续查找",
                               details={'variables': sorted(sampler.covered_variables)})
                else:
                    self._emit(Kind.JOINT_CONFIGURE_FAILED, group_name,
                               "关节约束区间与上下限无交集")
                    jcs = []

        if jmg.solver is not None:
            ik_sampler = self._select_direct_ik_sampler(scene, jmg, constraints)
            if ik_sampler is not None:
                return self._combine(scene, jmg, joint_sampler, jcs, [ik_sampler],
                                     as_union=False)

        subgroups = model.get_subgroup_solvers(jmg)
        if subgroups:
            sub_samplers = self._select_subgroup_samplers(scene, jmg, subgroups, constraints)
            if sub_samplers:
                return self._combine(scene, jmg, joint_sampler, jcs, sub_samplers,
                                     as_union=True)

        if joint_sampler is not None:
            self._emit(Kind.FALLBACK_JOINT_SAMPLER, group_name,
                       "没有可用的任务空间采样器，使用部分关节采样器")
            return joint_sampler

        self._emit(Kind.NO_SAMPLER, group_name, "没有适用于该组的约束")
        return None

    # ── 关节约束 ──

    def _collect_joint_constraints(
        self,
        model: RobotModel,
        jmg: JointModelGroup,
        constraints: Constraints,
    ) -> Tuple[bool, List[KinematicJointConstraint]]:
        """解析属于本组的关节约束

        Returns:
            (是否覆盖全部组变量, 属于本组的已解析关节约束)
        """
        covered: Set[str] = set()
        jcs: List[KinematicJointConstraint] = []
        for msg in constraints.joint_constraints:
            kc = KinematicJointConstraint(model)
            if not kc.configure(msg):
                self._emit(Kind.JOINT_CONSTRAINT_DROPPED, jmg.name,
                           f"关节约束 '{msg.joint_name}' 无法解析，忽略")
                continue
            if not jmg.has_variable(kc.joint_variable_name):
                self._emit(Kind.JOINT_CONSTRAINT_DROPPED, jmg.name,
                           f"关节 '{msg.joint_name}' 不属于该组，忽略")
                continue
            covered.add(kc.joint_variable_name)
            jcs.append(kc)
        full = bool(jcs) and covered == jmg.variable_set
        return full, jcs

    # ── 整组 IK ──

    def _select_direct_ik_sampler(
        self,
        scene: PlanningScene,
        jmg: JointModelGroup,
        constraints: Constraints,
    ) -> Optional[IKConstraintSampler]:
        """为每个被约束连杆构造 IK 候选，返回采样体积最小的一个"""
        model = scene.get_robot_model()
        tf = scene.get_transforms()
        candidates: Dict[str, IKConstraintSampler] = {}

        def consider(sp: IKSamplingPose, kind: str) -> None:
            iks = IKConstraintSampler(scene, jmg.name, self.config, self._spawn_rng())
            if not iks.configure_pose(sp):
                self._emit(Kind.IK_CONFIGURE_FAILED, jmg.name,
                           f"{kind} IK 采样器配置失败", link_name=sp.link_name)
                return
            link = iks.link_name
            volume = iks.get_sampling_volume()
            current = candidates.get(link)
            if current is not None and not volume < current.get_sampling_volume():
                self._emit(Kind.IK_CANDIDATE_REJECTED, jmg.name,
                           f"{kind} 候选采样体积不小于已保留候选 "
                           f"({current.get_sampling_volume():.6g})",
                           link_name=link, sampling_volume=volume)
                return
            candidates[link] = iks
            self._emit(Kind.IK_CANDIDATE_ACCEPTED, jmg.name, f"保留 {kind} IK 候选",
                       link_name=link, sampling_volume=volume)

        for pc_msg in constraints.position_constraints:
            for oc_msg in constraints.orientation_constraints:
                if pc_msg.link_name != oc_msg.link_name:
                    continue
                pc = KinematicPositionConstraint(model)
                oc = KinematicOrientationConstraint(model)
                if pc.configure(pc_msg, tf) and oc.configure(oc_msg, tf):
                    consider(IKSamplingPose(pc, oc), "位置+姿态")
                else:
                    self._emit(Kind.IK_CONFIGURE_FAILED, jmg.name,
                               "位置+姿态约束解析失败", link_name=pc_msg.link_name)

        full_pose_links = set(candidates)

        for pc_msg in constraints.position_constraints:
            if pc_msg.link_name in full_pose_links:
                continue
            pc = KinematicPositionConstraint(model)
            if pc.configure(pc_msg, tf):
                consider(IKSamplingPose(position_constraint=pc), "位置")
            else:
                self._emit(Kind.IK_CONFIGURE_FAILED, jmg.name,
                           "位置约束解析失败", link_name=pc_msg.link_name)

        for oc_msg in constraints.orientation_constraints:
            if oc_msg.link_name in full_pose_links:
                continue
            oc = KinematicOrientationConstraint(model)
            if oc.configure(oc_msg, tf):
                consider(IKSamplingPose(orientation_constraint=oc), "姿态")
            else:
                self._emit(Kind.IK_CONFIGURE_FAILED, jmg.name,
                           "姿态约束解析失败", link_name=oc_msg.link_name)

        if not candidates:
            return None

        if len(candidates) > 1:
            self._emit(Kind.IK_MULTIPLE_LINKS, jmg.name,
                       "多个连杆有 IK 候选，只保留采样体积最小的一个",
                       details={'links': list(candidates)})

        chosen: Optional[IKConstraintSampler] = None
        for iks in candidates.values():
            if chosen is None or iks.get_sampling_volume() < chosen.get_sampling_volume():
                chosen = iks
        self._emit(Kind.IK_SAMPLER_SELECTED, jmg.name, "使用整组 IK 采样器",
                   link_name=chosen.link_name,
                   sampling_volume=chosen.get_sampling_volume())
        return chosen

    # ── 子组 ──

    def _select_subgroup_samplers(
        self,
        scene: PlanningScene,
        jmg: JointModelGroup,
        subgroups: Sequence[Tuple[JointModelGroup, IKSolverFn]],
        constraints: Constraints,
    ) -> List[ConstraintSampler]:
        """把位置 / 姿态约束分配到子组并递归选择

        每个约束分配给第一个包含其连杆的子组，且至多分配一次；
        没有子组包含其连杆的约束在这一步被忽略。
        """
        used_p: Set[int] = set()
        used_o: Set[int] = set()
        samplers: List[ConstraintSampler] = []

        for sub, _solver in subgroups:
            sub_constr = Constraints(name=constraints.name)
            for i, pc in enumerate(constraints.position_constraints):
                if i not in used_p and sub.has_link_model(pc.link_name):
                    sub_constr.position_constraints.append(pc)
                    used_p.add(i)
            for i, oc in enumerate(constraints.orientation_constraints):
                if i not in used_o and sub.has_link_model(oc.link_name):
                    sub_constr.orientation_constraints.append(oc)
                    used_o.add(i)
            if sub_constr.is_empty():
                continue

            self._emit(Kind.SUBGROUP_ATTEMPT, jmg.name,
                       f"尝试为子组 '{sub.name}' 构造采样器", details={
                           'subgroup': sub.name,
                           'n_position': len(sub_constr.position_constraints),
                           'n_orientation': len(sub_constr.orientation_constraints),
                       })
            cs = self.select_default_sampler(scene, sub.name, sub_constr)
            if cs is not None:
                self._emit(Kind.SUBGROUP_SAMPLER, jmg.name,
                           f"子组 '{sub.name}' 得到 {cs.name}",
                           details={'subgroup': sub.name})
                samplers.append(cs)
        return samplers

    # ── 组合 ──

    def _combine(
        self,
        scene: PlanningScene,
        jmg: JointModelGroup,
        joint_sampler: Optional[JointConstraintSampler],
        jcs: List[KinematicJointConstraint],
        task_samplers: List[ConstraintSampler],
        as_union: bool,
    ) -> ConstraintSampler:
        """把候补关节采样器与任务空间采样器组合

        任务空间采样器写入的变量上的关节区间交给该采样器作为解筛选条件，
        剩余变量上的关节约束保留在收窄后的关节采样器中，作为组合的第一个成员。
        """
        members: List[ConstraintSampler] = []
        if joint_sampler is not None:
            bounds = joint_sampler.bounds
            absorbed: Set[str] = set()
            for s in task_samplers:
                remaining = {k: v for k, v in bounds.items() if k not in absorbed}
                absorbed |= s.absorb_joint_bounds(remaining)
            if absorbed:
                self._emit(Kind.JOINT_BOUNDS_ABSORBED, jmg.name,
                           "关节约束落在任务空间采样器写入的变量上，改为 IK 解筛选条件",
                           details={'variables': sorted(absorbed)})
            if not absorbed:
                members.append(joint_sampler)
            elif len(absorbed) < len(bounds):
                narrowed = JointConstraintSampler(scene, jmg.name, self.config,
                                                  self._spawn_rng())
                if narrowed.configure_joint_constraints(
                        [jc for jc in jcs if jc.joint_variable_name not in absorbed]):
                    members.append(narrowed)
        members.extend(task_samplers)

        if len(members) == 1 and not as_union:
            return members[0]
        union = UnionConstraintSampler(scene, jmg.name, members, self.config,
                                       self._spawn_rng())
        self._emit(Kind.UNION_SAMPLER, jmg.name,
                   f"组合 {len(union.samplers)} 个采样器",
                   details={'members': [s.name for s in union.samplers]})
        return union

    def _spawn_rng(self) -> np.random.Generator:
        return np.random.default_rng(self._seed_seq.spawn(1)[0])

    def _emit(self, kind: SelectionEventKind, group_name: str, message: str = "",
              **kwargs) -> None:
        self.observer.on_event(SelectionEvent(kind, group_name, message, **kwargs))
