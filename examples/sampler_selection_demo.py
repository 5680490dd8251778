#!/usr/bin/env python
"""
examples/sampler_selection_demo.py - 约束采样器选择过程演示

构造一个 "手臂 + 手腕" 玩具机器人：
  - 子组 arm  (a1..a3)：关节值即 arm_tip 的位置
  - 子组 hand (h1..h3)：关节值即 hand_tip 姿态的旋转向量
  - 父组 both：没有整组 IK，只能拆分给子组

对几组典型约束调用 ConstraintSamplerManager.select_sampler，
打印决策轨迹、选中的采样器以及若干采样结果。

用法：
    python examples/sampler_selection_demo.py
    python examples/sampler_selection_demo.py --seed 7 --n-samples 5 --verbose
    python examples/sampler_selection_demo.py --constraints goal.json --group both
"""

import argparse
import logging
import math

import numpy as np
from scipy.spatial.transform import Rotation

from constraint_samplers import (
    Box,
    ConstraintRegion,
    ConstraintSamplerManager,
    Constraints,
    JointConstraint,
    OrientationConstraint,
    PlanningScene,
    Pose,
    PositionConstraint,
    RecordingObserver,
    RobotModel,
    SamplerConfig,
    Transforms,
    VariableBounds,
)


def build_robot() -> RobotModel:
    bounds = {
        "a1": VariableBounds(-2.0, 2.0),
        "a2": VariableBounds(-2.0, 2.0),
        "a3": VariableBounds(-2.0, 2.0),
        "h1": VariableBounds(-math.pi, math.pi),
        "h2": VariableBounds(-math.pi, math.pi),
        "h3": VariableBounds(-math.pi, math.pi),
    }

    def link_pose(link_name, state):
        a = state.get_group_positions(state.model.get_joint_model_group("arm"))
        h = state.get_group_positions(state.model.get_joint_model_group("hand"))
        if link_name == "hand_tip":
            return Pose(position=a, orientation=Rotation.from_rotvec(h).as_quat())
        return Pose(position=a)

    def arm_ik(link_name, pose, seed):
        if np.any(np.abs(pose.position) > 2.0):
            return None
        return pose.position.copy()

    def hand_ik(link_name, pose, seed):
        return pose.rotation.as_rotvec()

    model = RobotModel("toy_arm_hand", bounds, ["base", "arm_tip", "hand_tip"],
                       link_pose_fn=link_pose)
    model.add_group("arm", ["a1", "a2", "a3"], ["arm_tip"], solver=arm_ik)
    model.add_group("hand", ["h1", "h2", "h3"], ["hand_tip"], solver=hand_ik)
    model.add_group("both", list(bounds), ["arm_tip", "hand_tip"],
                    subgroup_names=["arm", "hand"])
    return model


def build_scenarios():
    table_box = ConstraintRegion.at(Box([0.2, 0.2, 0.05]), position=[0.3, 0.0, 0.0])
    tilt = Rotation.from_euler('x', 20, degrees=True).as_quat()
    return {
        "joint_only": ("arm", Constraints(name="joint_only", joint_constraints=[
            JointConstraint("a1", 0.5, 0.1, 0.1),
            JointConstraint("a2", -0.2, 0.05, 0.05),
            JointConstraint("a3", 1.0, 0.2, 0.2),
        ])),
        "arm_position": ("arm", Constraints(name="arm_position", position_constraints=[
            PositionConstraint("arm_tip", "table", [table_box]),
        ])),
        "split_to_subgroups": ("both", Constraints(
            name="split_to_subgroups",
            joint_constraints=[JointConstraint("a1", 0.6, 0.2, 0.2)],
            position_constraints=[PositionConstraint("arm_tip", "table", [table_box])],
            orientation_constraints=[OrientationConstraint(
                "hand_tip", "world", tilt, 0.05, 0.05, 0.3)],
        )),
        "nothing_applies": ("hand", Constraints(name="nothing_applies", joint_constraints=[
            JointConstraint("a1", 0.0, 0.1, 0.1),
        ])),
    }


def run(manager, recorder, scene, group_name, constraints, n_samples):
    recorder.clear()
    sampler = manager.select_sampler(scene, group_name, constraints)

    print(f"\n{'=' * 60}")
    print(f"场景: {constraints.name}  (关节组 '{group_name}')")
    print(constraints)
    print("决策轨迹:")
    for ev in recorder.events:
        print(f"  {ev}")

    if sampler is None:
        print("结果: 没有适用的约束，返回 None")
        return
    print(f"结果: {sampler!r}")

    state = scene.get_current_state()
    for i in range(n_samples):
        ok = sampler.sample(state)
        values = " ".join(f"{v:+.3f}" for v in state.values)
        print(f"  sample {i}: {'OK  ' if ok else 'FAIL'} [{values}]")


def main():
    parser = argparse.ArgumentParser(
        description="演示约束采样器的选择与组合")
    parser.add_argument("--seed", type=int, default=42,
                        help="随机种子")
    parser.add_argument("--n-samples", type=int, default=3,
                        help="每个场景的采样次数")
    parser.add_argument("--constraints", type=str, default=None,
                        help="从 JSON 文件加载约束集（替代内置场景）")
    parser.add_argument("--group", type=str, default="both",
                        help="配合 --constraints 使用的关节组")
    parser.add_argument("--verbose", action="store_true",
                        help="输出 DEBUG 日志")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    model = build_robot()
    transforms = Transforms("world")
    transforms.set_transform("table", Pose(position=[0.0, 0.0, 0.8]))
    scene = PlanningScene(model, transforms, name="demo")

    recorder = RecordingObserver()
    manager = ConstraintSamplerManager(SamplerConfig(random_seed=args.seed),
                                       observer=recorder)

    if args.constraints:
        scenarios = {"file": (args.group, Constraints.from_json(args.constraints))}
    else:
        scenarios = build_scenarios()

    for group_name, constraints in scenarios.values():
        run(manager, recorder, scene, group_name, constraints, args.n_samples)


if __name__ == "__main__":
    main()
