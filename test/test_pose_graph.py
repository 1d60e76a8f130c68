#!/usr/bin/env python3
"""
Unit tests for pose graph construction, traversal and initialization.
"""

import os
import sys
import unittest

import numpy as np

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from multi_camera_calibration.pose_graph import CAMERA_TIMESTAMP, INVALID, PoseGraph
from synthetic_rig import SyntheticRig


def _graph_with_edges(n_cameras, edges):
    """Graph with identity edge transforms for [(camera, timestamp), ...]."""
    graph = PoseGraph(n_cameras)
    for photo_index, (camera, timestamp) in enumerate(edges):
        graph.add_edge(camera, timestamp, photo_index, np.eye(4))
    return graph


class TestGraphBuilder(unittest.TestCase):
    """Test vertex and edge creation."""

    def test_camera_vertices_created_up_front(self):
        graph = PoseGraph(3)
        self.assertEqual(graph.n_vertices, 3)
        for vertex in graph.vertices:
            self.assertEqual(vertex.timestamp, CAMERA_TIMESTAMP)
            self.assertTrue(vertex.is_camera)
            np.testing.assert_array_equal(vertex.pose, np.eye(4))

    def test_photo_vertex_reused_per_timestamp(self):
        graph = PoseGraph(2)
        first = graph.get_photo_vertex(100)
        second = graph.get_photo_vertex(200)
        again = graph.get_photo_vertex(100)

        self.assertEqual(first, 2)
        self.assertEqual(second, 3)
        self.assertEqual(again, first)
        self.assertEqual(graph.n_vertices, 4)
        self.assertFalse(graph.vertices[first].is_camera)

    def test_negative_photo_timestamp_rejected(self):
        graph = PoseGraph(1)
        with self.assertRaises(ValueError):
            graph.get_photo_vertex(CAMERA_TIMESTAMP)
        with self.assertRaises(ValueError):
            graph.add_edge(0, -5, 0, np.eye(4))
        self.assertEqual(graph.n_vertices, 1)
        self.assertEqual(graph.edges, [])

        photo = graph.get_photo_vertex(0)
        self.assertFalse(graph.vertices[photo].is_camera)

    def test_min_matches_filter_is_strict(self):
        graph = PoseGraph(1)
        rvecs = [np.zeros(3)] * 3
        tvecs = [np.array([0.0, 0.0, 1.0])] * 3

        added = graph.add_camera_observations(0, rvecs, tvecs,
                                              point_counts=[10, 20, 21],
                                              timestamps=[1, 2, 3],
                                              min_matches=20)

        self.assertEqual(added, 1)
        self.assertEqual(len(graph.edges), 1)
        self.assertEqual(graph.edges[0].photo_index, 2)
        self.assertEqual(graph.vertices[graph.edges[0].photo_vertex].timestamp, 3)

    def test_edge_transform_from_rvec_tvec(self):
        graph = PoseGraph(1)
        graph.add_camera_observations(0, [np.array([0.0, 0.0, np.pi / 2])], [np.array([1.0, 2.0, 3.0])],
                                      point_counts=[30], timestamps=[5])
        T = graph.edges[0].transform

        np.testing.assert_array_almost_equal(T[:3, :3], [[0, -1, 0], [1, 0, 0], [0, 0, 1]])
        np.testing.assert_array_almost_equal(T[:3, 3], [1.0, 2.0, 3.0])
        np.testing.assert_array_almost_equal(T[3], [0, 0, 0, 1])

    def test_image_indices_map_dropped_images(self):
        graph = PoseGraph(1)
        graph.add_camera_observations(0, [np.zeros(3), np.zeros(3)], [np.ones(3), np.ones(3)],
                                      point_counts=[30, 30, 30], timestamps=[7, 8, 9],
                                      image_indices=[0, 2])

        self.assertEqual([e.photo_index for e in graph.edges], [0, 2])
        self.assertEqual([graph.vertices[e.photo_vertex].timestamp for e in graph.edges], [7, 9])

    def test_invalid_edges_rejected(self):
        graph = PoseGraph(2)
        with self.assertRaises(ValueError):
            graph.add_edge(2, 1, 0, np.eye(4))
        with self.assertRaises(ValueError):
            graph.add_edge(0, 1, 0, np.eye(3))


class TestAdjacency(unittest.TestCase):
    """Test the undirected adjacency structure."""

    def setUp(self):
        self.edges = [(0, 10), (1, 10), (1, 20), (2, 20), (0, 30)]
        self.graph = _graph_with_edges(3, self.edges)

    def test_matrix_symmetric_and_matches_edges(self):
        G = self.graph.adjacency_matrix()
        np.testing.assert_array_equal(G, G.T)

        connected = set()
        for edge in self.graph.edges:
            connected.add((edge.camera_vertex, edge.photo_vertex))
            connected.add((edge.photo_vertex, edge.camera_vertex))

        for i in range(self.graph.n_vertices):
            for j in range(self.graph.n_vertices):
                self.assertEqual(G[i, j] != 0, (i, j) in connected)

    def test_matrix_cells_hold_edge_index_plus_one(self):
        G = self.graph.adjacency_matrix()
        for edge_idx, edge in enumerate(self.graph.edges):
            self.assertEqual(G[edge.camera_vertex, edge.photo_vertex], edge_idx + 1)

    def test_no_self_loops(self):
        G = self.graph.adjacency_matrix()
        np.testing.assert_array_equal(np.diag(G), 0)


class TestTraversal(unittest.TestCase):
    """Test breadth-first traversal from the root."""

    def test_order_is_permutation_of_reachable(self):
        # camera 2 and timestamp 99 form an island
        graph = _graph_with_edges(4, [(0, 10), (1, 10), (1, 20), (3, 20), (2, 99)])
        order, pre = graph.traverse(0)

        reachable = {0, 1, 3, graph.get_photo_vertex(10), graph.get_photo_vertex(20)}
        self.assertEqual(sorted(order), sorted(reachable))
        self.assertEqual(len(order), len(set(order)))
        self.assertEqual(order[0], 0)

        self.assertEqual(pre[0], INVALID)
        for vertex in order[1:]:
            self.assertNotEqual(pre[vertex], INVALID)
            self.assertIn(pre[vertex], order[:order.index(vertex)])
        for vertex in set(range(graph.n_vertices)) - reachable:
            self.assertEqual(pre[vertex], INVALID)

    def test_breadth_first_levels(self):
        graph = _graph_with_edges(3, [(0, 10), (1, 10), (1, 20), (2, 20)])
        order, pre = graph.traverse(0)

        photo10 = graph.get_photo_vertex(10)
        photo20 = graph.get_photo_vertex(20)
        self.assertEqual(order, [0, photo10, 1, photo20, 2])
        self.assertEqual(pre[1], photo10)
        self.assertEqual(pre[2], photo20)


class TestInitialization(unittest.TestCase):
    """Test spanning-tree pose propagation."""

    def test_exact_edges_give_ground_truth(self):
        rig = SyntheticRig(n_cameras=3, timestamps=[10, 20, 30])
        context = rig.build_context({0: [10, 30], 1: [10, 20], 2: [20, 30]})

        disconnected = context.graph.initialize()

        self.assertEqual(disconnected, [])
        for cam, pose in enumerate(context.graph.camera_poses()):
            np.testing.assert_array_almost_equal(pose, rig.camera_poses[cam], decimal=10)
        for ts, pose in context.graph.target_poses().items():
            np.testing.assert_array_almost_equal(pose, rig.target_poses[ts], decimal=10)

    def test_camera_and_photo_directions(self):
        graph = PoseGraph(2)
        T0 = np.eye(4)
        T0[:3, 3] = [0.0, 0.0, 2.0]            # target 2 units in front of camera 0
        T1 = np.eye(4)
        T1[:3, 3] = [-1.0, 0.0, 2.0]           # camera 1 shifted by +1 in x
        graph.add_edge(0, 5, 0, T0)
        graph.add_edge(1, 5, 0, T1)

        graph.initialize()

        # photo pose = pre^-1 * edge with pre = identity root
        np.testing.assert_array_almost_equal(graph.vertices[2].pose, T0)
        # camera pose = edge * pre^-1
        np.testing.assert_array_almost_equal(graph.vertices[1].pose[:3, 3], [-1.0, 0.0, 0.0])

    def test_disconnected_camera_keeps_identity(self):
        graph = _graph_with_edges(3, [(0, 10), (1, 10)])
        graph.edges[0].transform[:3, 3] = [0.1, 0.2, 1.0]

        with self.assertLogs('multi_camera_calibration.pose_graph', level='WARNING') as logs:
            disconnected = graph.initialize()

        self.assertEqual(disconnected, [2])
        self.assertTrue(any('Camera 2' in line for line in logs.output))
        np.testing.assert_array_equal(graph.vertices[2].pose, np.eye(4))
        np.testing.assert_array_equal(graph.vertices[0].pose, np.eye(4))


if __name__ == '__main__':
    unittest.main()
