"""test/test_models.py - 数据模型测试"""
import json

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.spatial.transform import Rotation

from constraint_samplers.models import (
    Constraints,
    JointConstraint,
    Pose,
    SamplerConfig,
)
from constraint_samplers.regions import Box, Sphere

from helpers import box_position, orientation


class TestPose:

    def test_default_is_identity(self):
        p = Pose()
        assert_allclose(p.position, np.zeros(3))
        assert_allclose(p.orientation, [0, 0, 0, 1])

    def test_orientation_normalized(self):
        p = Pose(orientation=[0.0, 0.0, 0.0, 2.0])
        assert np.linalg.norm(p.orientation) == pytest.approx(1.0)

    def test_bad_shapes(self):
        with pytest.raises(ValueError):
            Pose(position=[1.0, 2.0])
        with pytest.raises(ValueError):
            Pose(orientation=[0.0, 0.0, 1.0])

    def test_zero_quaternion(self):
        with pytest.raises(ValueError):
            Pose(orientation=[0.0, 0.0, 0.0, 0.0])

    def test_to_matrix(self):
        q = Rotation.from_euler('z', 90, degrees=True).as_quat()
        T = Pose(position=[1.0, 2.0, 3.0], orientation=q).to_matrix()
        assert_allclose(T[:3, 3], [1, 2, 3])
        assert_allclose(T[:3, :3] @ [1.0, 0.0, 0.0], [0, 1, 0], atol=1e-12)

    def test_from_matrix_matches(self):
        q = Rotation.from_euler('xyz', [0.1, -0.2, 0.3]).as_quat()
        p = Pose(position=[0.4, 0.5, 0.6], orientation=q)
        back = Pose.from_matrix(p.to_matrix())
        assert_allclose(back.position, p.position)
        assert (back.rotation.inv() * p.rotation).magnitude() < 1e-9


class TestConstraints:

    def test_is_empty(self):
        assert Constraints().is_empty()
        assert not Constraints(joint_constraints=[JointConstraint("j1", 0.0, 0.1, 0.1)]).is_empty()

    def test_str_lists_every_constraint(self):
        c = Constraints(
            name="goal",
            joint_constraints=[JointConstraint("j1", 0.0, 0.1, 0.1)],
            position_constraints=[box_position("tool", [0, 0, 0], [0.1, 0.1, 0.1])],
            orientation_constraints=[orientation("tool", [0.1, 0.1, 0.1])],
        )
        text = str(c)
        assert "goal" in text
        assert "joint j1" in text
        assert "position tool" in text
        assert "orientation tool" in text

    def test_offset_shape_checked(self):
        with pytest.raises(ValueError):
            box_position("tool", [0, 0, 0], [0.1, 0.1, 0.1], offset=[0.0, 0.1])

    def test_json_file(self, tmp_path):
        c = Constraints(
            name="goal",
            joint_constraints=[JointConstraint("j1", 0.3, 0.1, 0.2, weight=0.5)],
            position_constraints=[box_position("tool", [0.5, 0, 0.3], [0.2, 0.1, 0.1],
                                               frame="table", offset=[0, 0, 0.05])],
            orientation_constraints=[orientation("tool", [0.1, 0.2, 0.3])],
        )
        path = c.to_json(tmp_path / "sub" / "goal.json")
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
        assert raw['name'] == "goal"

        loaded = Constraints.from_json(path)
        assert loaded.joint_constraints == c.joint_constraints
        pc = loaded.position_constraints[0]
        assert pc.frame_id == "table"
        assert_allclose(pc.target_point_offset, [0, 0, 0.05])
        assert pc.constraint_regions[0].volume() == pytest.approx(0.002)
        assert_allclose(pc.constraint_regions[0].center, [0.5, 0, 0.3])
        oc = loaded.orientation_constraints[0]
        assert oc.absolute_z_axis_tolerance == pytest.approx(0.3)

    def test_from_dict_defaults(self):
        c = Constraints.from_dict({'position_constraints': [{
            'link_name': 'tool',
            'frame_id': 'world',
            'constraint_regions': [{'shape': {'type': 'sphere', 'radius': 0.1}}],
        }]})
        assert c.name == ""
        assert c.joint_constraints == []
        region = c.position_constraints[0].constraint_regions[0]
        assert isinstance(region.shape, Sphere)
        assert_allclose(region.center, [0, 0, 0])


class TestSamplerConfig:

    def test_defaults(self):
        cfg = SamplerConfig()
        assert cfg.max_sampling_attempts == 2
        assert cfg.max_region_sample_attempts == 100
        assert cfg.random_seed is None

    def test_from_dict_ignores_unknown(self):
        cfg = SamplerConfig.from_dict({'max_sampling_attempts': 5, 'unknown_key': 1})
        assert cfg.max_sampling_attempts == 5
        assert cfg.max_region_sample_attempts == 100

    def test_json_file(self, tmp_path):
        cfg = SamplerConfig(max_sampling_attempts=7, random_seed=3)
        path = cfg.to_json(tmp_path / "cfg.json")
        assert SamplerConfig.from_json(path) == cfg

    def test_seeded_rng_repeatable(self):
        cfg = SamplerConfig(random_seed=11)
        a = cfg.make_rng().uniform(size=5)
        b = cfg.make_rng().uniform(size=5)
        assert_allclose(a, b)

    def test_seed_sequence_children_differ(self):
        root = SamplerConfig(random_seed=11).make_seed_sequence()
        c1, c2 = root.spawn(2)
        a = np.random.default_rng(c1).uniform(size=5)
        b = np.random.default_rng(c2).uniform(size=5)
        assert not np.allclose(a, b)
        again = SamplerConfig(random_seed=11).make_seed_sequence().spawn(1)[0]
        assert_allclose(np.random.default_rng(again).uniform(size=5), a)


class TestRegionShapesInConstraints:
    """位置约束里区域的体积之和"""

    def test_multiple_regions(self):
        pc = box_position("tool", [0, 0, 0], [0.1, 0.2, 0.5])
        pc.constraint_regions.append(pc.constraint_regions[0].transformed(np.eye(4)))
        total = sum(r.volume() for r in pc.constraint_regions)
        assert total == pytest.approx(2 * Box([0.1, 0.2, 0.5]).volume())
