"""
constraint_samplers - 运动学约束采样器的选择与组合

给定机器人关节组和一组约束（关节约束 / 位置约束 / 姿态约束），
构造能够反复生成满足约束的机器人状态的采样器：

1. 关节约束覆盖全部组变量时，直接在关节区间内采样
2. 关节组带 IK 求解函数时，在任务空间约束内采样目标位姿再求逆解，
   多个候选之间按采样体积 (sampling volume) 取最小者
3. 关节组本身没有 IK 求解函数时，把约束分配给带求解函数的子组，
   递归选择后组合为 UnionConstraintSampler
4. 以上都不适用时回退到部分关节约束采样

组合采样器保证同一个关节变量只由一个成员写入。
"""

from .models import (
    Pose,
    JointConstraint,
    PositionConstraint,
    OrientationConstraint,
    Constraints,
    SamplerConfig,
)
from .regions import Shape, Box, Sphere, Cylinder, ConstraintRegion, shape_from_dict
from .robot_model import (
    IKSolverFn,
    LinkPoseFn,
    VariableBounds,
    JointModelGroup,
    RobotModel,
    RobotState,
)
from .transforms import Transforms, PlanningScene
from .kinematic_constraints import (
    KinematicJointConstraint,
    KinematicPositionConstraint,
    KinematicOrientationConstraint,
    normalize_angle,
)
from .events import (
    SelectionEventKind,
    SelectionEvent,
    SelectionObserver,
    LoggingObserver,
    RecordingObserver,
    CompositeObserver,
)
from .samplers import (
    ConstraintSampler,
    ConstraintSamplerAllocator,
    JointConstraintSampler,
    IKConstraintSampler,
    IKSamplingPose,
    UnionConstraintSampler,
)
from .manager import ConstraintSamplerManager

__version__ = '0.3.0'

__all__ = [
    # 数据模型
    'Pose',
    'JointConstraint',
    'PositionConstraint',
    'OrientationConstraint',
    'Constraints',
    'SamplerConfig',
    # 约束区域
    'Shape',
    'Box',
    'Sphere',
    'Cylinder',
    'ConstraintRegion',
    'shape_from_dict',
    # 机器人模型与场景
    'IKSolverFn',
    'LinkPoseFn',
    'VariableBounds',
    'JointModelGroup',
    'RobotModel',
    'RobotState',
    'Transforms',
    'PlanningScene',
    # 已解析约束
    'KinematicJointConstraint',
    'KinematicPositionConstraint',
    'KinematicOrientationConstraint',
    'normalize_angle',
    # 决策轨迹
    'SelectionEventKind',
    'SelectionEvent',
    'SelectionObserver',
    'LoggingObserver',
    'RecordingObserver',
    'CompositeObserver',
    # 采样器
    'ConstraintSampler',
    'ConstraintSamplerAllocator',
    'JointConstraintSampler',
    'IKConstraintSampler',
    'IKSamplingPose',
    'UnionConstraintSampler',
    'ConstraintSamplerManager',
]
