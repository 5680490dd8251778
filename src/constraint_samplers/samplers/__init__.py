"""
constraint_samplers.samplers - 约束采样器

- JointConstraintSampler: 关节空间区间内均匀采样
- IKConstraintSampler: 在任务空间约束内采样目标位姿，再用 IK 求解关节值
- UnionConstraintSampler: 按顺序组合覆盖变量互不相交的采样器
"""

from .base import ConstraintSampler, ConstraintSamplerAllocator
from .joint_sampler import JointConstraintSampler
from .ik_sampler import IKConstraintSampler, IKSamplingPose
from .union_sampler import UnionConstraintSampler

__all__ = [
    'ConstraintSampler',
    'ConstraintSamplerAllocator',
    'JointConstraintSampler',
    'IKConstraintSampler',
    'IKSamplingPose',
    'UnionConstraintSampler',
]
