"""Tests for koreo_graph.export."""

import json
import tempfile
from pathlib import Path

import networkx as nx
import pytest

from koreo_graph.export import export_json, load_json, to_networkx
from koreo_graph.models import (
    DomainType,
    EdgeType,
    InflatedEdge,
    InflatedGraph,
    InflatedNode,
    InflatedNodeType,
)


@pytest.fixture
def sample_graph():
    """Create a sample inflated graph for testing."""
    return InflatedGraph(
        nodes=[
            InflatedNode(
                id="wf-1",
                label="deploy-app",
                type=InflatedNodeType.domain(DomainType.WORKFLOW),
                underlying_object={
                    "kind": "Workflow",
                    "metadata": {"name": "deploy-app", "namespace": "default"},
                },
            ),
            InflatedNode(
                id="fn-1",
                label="deploy",
                type=InflatedNodeType.domain(DomainType.RESOURCE_FUNCTION),
                underlying_object={
                    "kind": "ResourceFunction",
                    "metadata": {"name": "deployment", "namespace": "default"},
                },
            ),
            InflatedNode(
                id="pod-1",
                label="web",
                type=InflatedNodeType.kind("Pod"),
                underlying_object={"kind": "Pod", "metadata": {"name": "web", "namespace": "default"}},
                metadata={"managedResource": True, "readonly": False},
            ),
        ],
        edges=[
            InflatedEdge.create("wf-1", "fn-1", EdgeType.WORKFLOW_TO_STEP),
            InflatedEdge.create("fn-1", "pod-1", EdgeType.STEP_TO_RESOURCE),
        ],
    )


def test_to_networkx(sample_graph):
    """Test converting an inflated graph to a DiGraph."""
    graph = to_networkx(sample_graph)

    assert graph.number_of_nodes() == 3
    assert graph.number_of_edges() == 2
    assert graph.nodes["pod-1"]["kind"] == "Pod"
    assert graph.nodes["pod-1"]["namespace"] == "default"
    assert graph.nodes["pod-1"]["is_domain_type"] is False
    assert graph.nodes["fn-1"]["type"] == "ResourceFunction"
    assert graph.edges["fn-1", "pod-1"]["type"] == "StepToResource"
    assert nx.is_directed_acyclic_graph(graph)


def test_export_json(sample_graph):
    """Test exporting graph to JSON."""
    with tempfile.TemporaryDirectory() as tmpdir:
        output_file = Path(tmpdir) / "graph.json"

        export_json(sample_graph, str(output_file))

        assert output_file.exists()

        with open(output_file) as f:
            data = json.load(f)

        assert "nodes" in data
        assert "edges" in data
        assert len(data["nodes"]) == 3
        assert data["nodes"][2]["metadata"] == {"managedResource": True, "readonly": False}
        assert data["edges"][1]["type"] == "StepToResource"


def test_export_json_creates_directories(sample_graph):
    """Test that missing parent directories are created."""
    with tempfile.TemporaryDirectory() as tmpdir:
        output_file = Path(tmpdir) / "nested" / "dir" / "graph.json"

        export_json(sample_graph, str(output_file))

        assert output_file.exists()


def test_load_json(sample_graph):
    """Test that an exported graph loads back unchanged."""
    with tempfile.TemporaryDirectory() as tmpdir:
        output_file = Path(tmpdir) / "graph.json"
        export_json(sample_graph, str(output_file))

        loaded = load_json(str(output_file))

        assert loaded == sample_graph
