"""test/test_ik_sampler.py - IK 约束采样器测试"""
import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.spatial.transform import Rotation

from constraint_samplers import (
    Constraints,
    IKConstraintSampler,
    IKSamplingPose,
    KinematicOrientationConstraint,
    KinematicPositionConstraint,
    PlanningScene,
    RobotModel,
    RobotState,
    SamplerConfig,
)

from helpers import StubSolver, box_position, orientation, six_dof_link_pose


def _goal(pc=None, oc=None, name="goal"):
    return Constraints(
        name=name,
        position_constraints=[pc] if pc is not None else [],
        orientation_constraints=[oc] if oc is not None else [],
    )


def _link_pose(state):
    return six_dof_link_pose("tool", state)


class TestIKConstraintSamplerConfigure:

    def test_pose_volume_is_product(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        goal = _goal(box_position("wrist", [0.5, 0, 0.3], [0.1, 0.2, 0.5]),
                     orientation("wrist", [0.1, 0.2, 0.3]))
        assert sampler.can_service(goal)
        assert sampler.configure(goal)
        assert sampler.link_name == "wrist"
        assert sampler.get_sampling_volume() == pytest.approx(0.01 * 0.006)
        assert sampler.get_position_constraint() is not None
        assert sampler.get_orientation_constraint() is not None
        assert sampler.covered_variables == frozenset(
            ["j1", "j2", "j3", "j4", "j5", "j6"])

    def test_missing_dimension_is_unit_factor(self, six_dof_scene):
        pos_only = IKConstraintSampler(six_dof_scene, "arm")
        assert pos_only.configure(_goal(box_position("tool", [0, 0, 0], [0.1, 0.2, 0.5])))
        assert pos_only.get_sampling_volume() == pytest.approx(0.01)
        assert pos_only.get_orientation_constraint() is None

        orient_only = IKConstraintSampler(six_dof_scene, "arm")
        assert orient_only.configure(_goal(oc=orientation("tool", [0.1, 0.2, 0.3])))
        assert orient_only.get_sampling_volume() == pytest.approx(0.006)

    def test_pair_preferred_over_single(self, six_dof_scene):
        goal = Constraints(
            position_constraints=[box_position("L1", [0, 0, 0], [0.1] * 3),
                                  box_position("tool", [0, 0, 0], [0.1] * 3)],
            orientation_constraints=[orientation("tool", [0.1] * 3)],
        )
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        assert sampler.configure(goal)
        assert sampler.link_name == "tool"
        assert sampler.get_orientation_constraint() is not None

    def test_no_solver(self, six_dof_scene, six_dof_model):
        six_dof_model.set_group_solver("arm", None)
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        goal = _goal(box_position("tool", [0, 0, 0], [0.1] * 3))
        assert not sampler.can_service(goal)
        assert not sampler.configure(goal)

    def test_link_outside_group(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        goal = _goal(box_position("base", [0, 0, 0], [0.1] * 3))
        assert not sampler.can_service(goal)
        assert not sampler.configure(goal)

    def test_frame_lookup_fails(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        assert not sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3,
                                                        frame="shelf")))
        assert not sampler.is_valid

    def test_empty_or_mixed_goal(self, six_dof_scene, six_dof_model, table_transforms):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        assert not sampler.configure_pose(IKSamplingPose())

        pc = KinematicPositionConstraint(six_dof_model)
        pc.configure(box_position("L1", [0, 0, 0], [0.1] * 3), table_transforms)
        oc = KinematicOrientationConstraint(six_dof_model)
        oc.configure(orientation("tool", [0.1] * 3), table_transforms)
        assert not IKSamplingPose(pc, oc).is_consistent()
        assert not sampler.configure_pose(IKSamplingPose(pc, oc))

    def test_orientation_only_needs_link_pose_fn(self, six_dof_model, table_transforms):
        model = RobotModel("no_fk", {n: six_dof_model.get_variable_bounds(n)
                                     for n in six_dof_model.variable_names},
                           six_dof_model.link_names)
        model.add_group("arm", six_dof_model.variable_names, ["tool"], solver=StubSolver())
        scene = PlanningScene(model, table_transforms)
        sampler = IKConstraintSampler(scene, "arm")
        assert not sampler.configure(_goal(oc=orientation("tool", [0.1] * 3)))
        assert sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))

    def test_reconfigure_clears_filters(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        sampler.absorb_joint_bounds({"j1": (0.0, 0.1)})
        assert sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        assert sampler.joint_filters == {}


class TestIKConstraintSamplerSample:

    def test_pose_goal_satisfied(self, six_dof_scene, six_dof_model):
        q = Rotation.from_euler('xyz', [0.2, -0.1, 0.4]).as_quat()
        goal = _goal(box_position("tool", [0.8, 0.1, 0.0], [0.2, 0.1, 0.3], frame="table"),
                     orientation("tool", [0.1, 0.2, 0.05], quat=q, frame="table"))
        sampler = IKConstraintSampler(six_dof_scene, "arm", SamplerConfig(random_seed=1))
        assert sampler.configure(goal)

        state = RobotState(six_dof_model)
        for _ in range(100):
            assert sampler.sample(state)
            pose = _link_pose(state)
            assert sampler.get_position_constraint().decide(pose)
            assert sampler.get_orientation_constraint().decide(pose, tol=1e-6)

    def test_target_point_offset(self, six_dof_scene, six_dof_model):
        goal = _goal(box_position("tool", [0.5, 0.5, 0.5], [0.05] * 3, offset=[0, 0, 0.3]),
                     orientation("tool", [0.2, 0.2, 0.2]))
        sampler = IKConstraintSampler(six_dof_scene, "arm", SamplerConfig(random_seed=2))
        assert sampler.configure(goal)

        state = RobotState(six_dof_model)
        for _ in range(50):
            assert sampler.sample(state)
            pose = _link_pose(state)
            assert sampler.get_position_constraint().decide(pose)
            # 连杆原点在目标点下方约 0.3
            assert pose.position[2] < 0.5 - 0.2

    def test_position_only_uses_random_orientation(self, six_dof_scene, six_dof_model):
        sampler = IKConstraintSampler(six_dof_scene, "arm", SamplerConfig(random_seed=3))
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        state = RobotState(six_dof_model)
        rotvecs = []
        for _ in range(20):
            assert sampler.sample(state)
            rotvecs.append(state.get_group_positions(six_dof_model.get_joint_model_group("arm"))[3:])
        assert np.ptp(np.array(rotvecs), axis=0).max() > 0.5

    def test_orientation_only_keeps_current_position(self, six_dof_scene, six_dof_model):
        sampler = IKConstraintSampler(six_dof_scene, "arm", SamplerConfig(random_seed=4))
        assert sampler.configure(_goal(oc=orientation("tool", [0.1, 0.1, 0.1])))
        state = RobotState(six_dof_model)
        state.set_variable_positions({"j1": 0.3, "j2": 0.2, "j3": -0.1})
        assert sampler.sample(state)
        assert_allclose([state.get_variable_position(n) for n in ("j1", "j2", "j3")],
                        [0.3, 0.2, -0.1], atol=1e-9)
        assert sampler.get_orientation_constraint().decide(_link_pose(state), tol=1e-6)

    def test_seed_is_current_group_values(self, six_dof_scene, six_dof_model):
        solver = six_dof_model.get_joint_model_group("arm").solver
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("wrist", [0, 0, 0], [0.1] * 3)))
        state = RobotState(six_dof_model)
        state.set_variable_position("j5", 0.7)
        sampler.sample(state)
        link, _pose, seed = solver.calls[0]
        assert link == "wrist"
        assert_allclose(seed, [0, 0, 0, 0, 0.7, 0])

    def test_retries_until_solved(self, six_dof_scene, six_dof_model):
        solver = StubSolver(fail_first=1)
        six_dof_model.set_group_solver("arm", solver)
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        assert sampler.sample(RobotState(six_dof_model))
        assert len(solver.calls) == 2

    def test_gives_up_after_budget(self, six_dof_scene, six_dof_model):
        solver = StubSolver(always_fail=True)
        six_dof_model.set_group_solver("arm", solver)
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        state = RobotState(six_dof_model)
        assert not sampler.sample(state)
        assert len(solver.calls) == 2
        assert not sampler.sample(state, max_attempts=5)
        assert len(solver.calls) == 7
        assert_allclose(state.values, np.zeros(6))

    def test_wrong_solution_shape(self, six_dof_scene, six_dof_model):
        six_dof_model.set_group_solver("arm", lambda link, pose, seed: np.zeros(3))
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        with pytest.raises(ValueError):
            sampler.sample(RobotState(six_dof_model))


class TestAbsorbedJointBounds:

    def test_absorb_only_covered(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        assert sampler.absorb_joint_bounds({"j1": (0.0, 1.0), "a1": (0.0, 1.0)}) == {"j1"}
        assert sampler.joint_filters == {"j1": (0.0, 1.0)}

    def test_absorb_intersects(self, six_dof_scene):
        sampler = IKConstraintSampler(six_dof_scene, "arm")
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [0.1] * 3)))
        sampler.absorb_joint_bounds({"j1": (0.0, 1.0)})
        sampler.absorb_joint_bounds({"j1": (-1.0, 0.5)})
        assert sampler.joint_filters["j1"] == pytest.approx((0.0, 0.5))

    def test_solutions_filtered(self, six_dof_scene, six_dof_model):
        """区域 x 方向跨 [-0.5, 0.5]，只接受 j1 = x >= 0 的解"""
        sampler = IKConstraintSampler(six_dof_scene, "arm", SamplerConfig(random_seed=7))
        sampler.configure(_goal(box_position("tool", [0, 0, 0], [1.0, 0.1, 0.1])))
        sampler.absorb_joint_bounds({"j1": (0.0, 1.0)})

        state = RobotState(six_dof_model)
        n_ok = 0
        for _ in range(200):
            if sampler.sample(state, max_attempts=10):
                n_ok += 1
                assert state.get_variable_position("j1") >= 0.0
        assert n_ok > 150
