"""Tests for DiagramModel placement and relationship maintenance."""

import pytest

from tfdiagram.diagram import DiagramModel
from tfdiagram.models import ComponentKind, RelationshipKind
from tfdiagram.registry import ComponentRegistry, ComponentSpec

K = ComponentKind
R = RelationshipKind


@pytest.fixture
def registry():
    return ComponentRegistry.default()


@pytest.fixture
def diagram(registry):
    return DiagramModel("Test", registry)


def _parents(diagram, component_id):
    """Every component listing component_id as a child."""
    return [c for c in [diagram.region] + diagram.all_components() if component_id in c.children]


class TestPlacement:
    """Tests for add_component."""

    def test_new_diagram_has_only_root(self, diagram):
        """Test a new diagram holds just the region root."""
        assert diagram.region.kind == K.REGION
        assert diagram.region.attributes["regionName"] == "us-east-1"
        assert diagram.all_components() == []

    def test_nested_placement(self, diagram, registry):
        """Test components land in the first area accepting their kind."""
        vpc = registry.create(K.VPC, name="main")
        subnet = registry.create(K.SUBNET, name="app")
        bucket = registry.create(K.S3_BUCKET, name="assets")

        assert diagram.add_component(vpc) is diagram.region
        assert diagram.add_component(subnet) is vpc
        assert diagram.add_component(bucket) is diagram.region
        assert diagram.region.children == [vpc.id, bucket.id]
        assert vpc.children == [subnet.id]

    def test_fallback_to_root(self, diagram, registry):
        """Test a component no area accepts goes under the root."""
        ec2 = registry.create(K.EC2_INSTANCE, name="web")
        assert diagram.add_component(ec2) is diagram.region
        assert diagram.parent_of(ec2.id) is diagram.region

    @pytest.mark.parametrize("first", [K.SUBNET, K.SECURITY_GROUP])
    def test_first_eligible_area_wins(self, diagram, registry, first):
        """Test placement depends on the order areas were added."""
        second = K.SECURITY_GROUP if first == K.SUBNET else K.SUBNET
        diagram.add_component(registry.create(K.VPC, name="main"))
        first_area = registry.create(first, name="first")
        diagram.add_component(first_area)
        diagram.add_component(registry.create(second, name="second"))

        ec2 = registry.create(K.EC2_INSTANCE, name="web")
        assert diagram.add_component(ec2) is first_area

    def test_duplicate_id_rejected(self, diagram, registry):
        """Test the same component cannot be added twice."""
        bucket = registry.create(K.S3_BUCKET)
        diagram.add_component(bucket)
        with pytest.raises(ValueError):
            diagram.add_component(bucket)


class TestRelationships:
    """Tests for add_relationship."""

    @pytest.fixture
    def network(self, diagram, registry):
        vpc = registry.create(K.VPC, name="main")
        subnet_a = registry.create(K.SUBNET, name="a")
        subnet_b = registry.create(K.SUBNET, name="b")
        sg = registry.create(K.SECURITY_GROUP, name="web")
        ec2 = registry.create(K.EC2_INSTANCE, name="web")
        for component in (vpc, subnet_a, subnet_b, sg, ec2):
            diagram.add_component(component)
        return vpc, subnet_a, subnet_b, sg, ec2

    def test_unknown_endpoint(self, diagram):
        """Test a relationship to an unknown id is rejected without changes."""
        assert diagram.add_relationship(diagram.region.id, "missing", R.CONTAINS) is None
        assert diagram.relationships == []

    def test_contains_reparents(self, diagram, network):
        """Test a contains edge moves the target under the source."""
        vpc, subnet_a, subnet_b, sg, ec2 = network
        assert subnet_a.children == [ec2.id]

        rel = diagram.add_relationship(sg.id, ec2.id, R.CONTAINS, "contains")
        assert rel is not None
        assert rel.label == "contains"
        assert sg.children == [ec2.id]
        assert subnet_a.children == []

    def test_single_parent_after_many_moves(self, diagram, network):
        """Test a target is listed by exactly one area with one containment record."""
        vpc, subnet_a, subnet_b, sg, ec2 = network
        for area in (subnet_b, sg, subnet_a, subnet_b, sg):
            diagram.add_relationship(area.id, ec2.id, R.CONTAINS)

        assert _parents(diagram, ec2.id) == [sg]
        contains = [
            r for r in diagram.relationships if r.kind == R.CONTAINS and r.target_id == ec2.id
        ]
        assert len(contains) == 1
        assert contains[0].source_id == sg.id

    def test_disallowed_contains_rejected(self, diagram, network):
        """Test an area cannot contain a kind it does not allow."""
        vpc, subnet_a, subnet_b, sg, ec2 = network
        assert diagram.add_relationship(vpc.id, ec2.id, R.CONTAINS) is None
        assert diagram.relationships == []
        assert _parents(diagram, ec2.id) == [subnet_a]

    def test_area_cannot_contain_itself(self):
        """Test a contains edge from an area to itself is rejected."""
        registry = ComponentRegistry.default()
        registry.register(
            ComponentSpec(K.VPC, is_area=True, allowed_children=frozenset({K.VPC, K.SUBNET}))
        )
        diagram = DiagramModel("Nested", registry)
        vpc = registry.create(K.VPC, name="main")
        diagram.add_component(vpc)

        assert diagram.add_relationship(vpc.id, vpc.id, R.CONTAINS) is None
        assert diagram.relationships == []
        assert diagram.parent_of(vpc.id) is diagram.region
        assert vpc.children == []
        assert diagram.all_components() == [vpc]

    def test_other_kinds_do_not_reparent(self, diagram, network):
        """Test connects_to and depends_on only touch the edge list."""
        vpc, subnet_a, subnet_b, sg, ec2 = network
        diagram.add_relationship(sg.id, ec2.id, R.CONNECTS_TO, "connects to")
        diagram.add_relationship(vpc.id, subnet_b.id, R.DEPENDS_ON)
        assert _parents(diagram, ec2.id) == [subnet_a]
        assert len(diagram.relationships) == 2


class TestRemoveComponent:
    """Tests for remove_component."""

    def test_root_cannot_be_removed(self, diagram):
        """Test removing the region root is a no-op."""
        diagram.remove_component(diagram.region.id)
        assert diagram.find_component(diagram.region.id) is diagram.region

    def test_remove_area_and_descendants(self, diagram, registry):
        """Test removing an area drops its subtree and related edges."""
        vpc = registry.create(K.VPC)
        subnet = registry.create(K.SUBNET)
        bucket = registry.create(K.S3_BUCKET)
        for component in (vpc, subnet, bucket):
            diagram.add_component(component)
        diagram.add_relationship(vpc.id, subnet.id, R.CONTAINS)
        diagram.add_relationship(subnet.id, bucket.id, R.CONNECTS_TO)

        diagram.remove_component(vpc.id)

        assert vpc.id not in diagram
        assert subnet.id not in diagram
        assert diagram.region.children == [bucket.id]
        assert diagram.relationships == []


class TestDocuments:
    """Tests for diagram documents."""

    def test_round_trip(self, diagram, registry):
        """Test the full tree and relationships survive a round trip."""
        vpc = registry.create(K.VPC, name="main", attributes={"cidrBlock": "10.9.0.0/16"})
        subnet = registry.create(K.SUBNET, name="app")
        ec2 = registry.create(K.EC2_INSTANCE, name="web", properties={"terraformId": "aws_instance.web"})
        for component in (vpc, subnet, ec2):
            diagram.add_component(component)
        diagram.add_relationship(vpc.id, subnet.id, R.CONTAINS, "contains")
        diagram.source_marker = '["aws_vpc.main"]'

        doc = diagram.to_document()
        assert doc["region"]["children"][0]["id"] == vpc.id
        assert doc["sourceMarker"] == '["aws_vpc.main"]'

        restored = DiagramModel.from_document(doc, registry)
        assert restored.id == diagram.id
        assert restored.name == "Test"
        assert restored.region.id == diagram.region.id
        assert [c.id for c in restored.all_components()] == [vpc.id, subnet.id, ec2.id]
        assert restored.parent_of(ec2.id).id == subnet.id
        assert restored.find_component(vpc.id).attributes["cidrBlock"] == "10.9.0.0/16"
        assert restored.find_component(ec2.id).properties == {"terraformId": "aws_instance.web"}
        assert restored.relationships == diagram.relationships
        assert restored.to_document() == doc

    def test_source_marker_omitted(self, diagram):
        """Test sourceMarker is only written when set."""
        assert "sourceMarker" not in diagram.to_document()
