"""
Pytest fixtures for test targets and circuits.
"""
import pytest
from tinytranspiler.ir import Circuit
from tinytranspiler.target import Target, InstructionProperties


# =============================================================================
# Topology Factories (test utilities)
# =============================================================================

def line_topology(n: int) -> frozenset[tuple[int, int]]:
    """Linear chain: 0-1-2-3-..."""
    return frozenset((i, i + 1) for i in range(n - 1))


def grid_topology(rows: int, cols: int) -> frozenset[tuple[int, int]]:
    """2D grid topology."""
    edges = set()
    for r in range(rows):
        for c in range(cols):
            i = r * cols + c
            if c < cols - 1: edges.add((i, i + 1))
            if r < rows - 1: edges.add((i, i + cols))
    return frozenset(edges)


def all_to_all_topology(n: int) -> frozenset[tuple[int, int]]:
    """Every qubit connected to every other."""
    return frozenset((i, j) for i in range(n) for j in range(i + 1, n))


IBM_BASIS = frozenset({"rz", "sx", "x", "cx"})
ECR_BASIS = frozenset({"rz", "sx", "x", "ecr"})
RIGETTI_BASIS = frozenset({"rx", "rz", "cz"})
IONQ_BASIS = frozenset({"rx", "ry", "rz", "cx"})


def noisy_line(n: int, cx_errors: dict[tuple[int, int], float], basis=IBM_BASIS) -> Target:
    """Line target with calibrated CX errors on both directions of each listed edge."""
    cx = {}
    for (a, b), err in cx_errors.items():
        cx[(a, b)] = cx[(b, a)] = InstructionProperties(duration=3.0, error=err)
    return Target(n_qubits=n, edges=line_topology(n), basis_gates=basis, properties={"cx": cx},
                  name=f"noisy_line_{n}")


# =============================================================================
# Test Targets
# =============================================================================

@pytest.fixture
def line_3():
    """IBM-style: 3 qubits, line topology, {RZ, SX, X, CX} basis."""
    return Target(n_qubits=3, edges=line_topology(3), basis_gates=IBM_BASIS, name="line_3")


@pytest.fixture
def ibm_line_5():
    """IBM-style: 5 qubits, line topology, {RZ, SX, X, CX} basis."""
    return Target(n_qubits=5, edges=line_topology(5), basis_gates=IBM_BASIS, name="ibm_line_5")


@pytest.fixture
def ibm_grid_4():
    """IBM-style: 4 qubits, 2x2 grid, {RZ, SX, X, CX} basis."""
    return Target(n_qubits=4, edges=grid_topology(2, 2), basis_gates=IBM_BASIS, name="ibm_grid_4")


@pytest.fixture
def ecr_line_3():
    """ECR device: 3 qubits, line topology, {RZ, SX, X, ECR} basis."""
    return Target(n_qubits=3, edges=line_topology(3), basis_gates=ECR_BASIS, name="ecr_line_3")


@pytest.fixture
def rigetti_line_5():
    """Rigetti-style: 5 qubits, line topology, {RX, RZ, CZ} basis."""
    return Target(n_qubits=5, edges=line_topology(5), basis_gates=RIGETTI_BASIS, name="rigetti_line_5")


@pytest.fixture
def ionq_4():
    """IonQ-style: 4 qubits, all-to-all, {RX, RY, RZ, CX} basis."""
    return Target(n_qubits=4, edges=all_to_all_topology(4), basis_gates=IONQ_BASIS, name="ionq_4")


@pytest.fixture
def directed_line_3():
    """Directed couplers 0->1 and 1->2 with a {RZ, SX, X, CX} basis."""
    return Target(n_qubits=3, edges=line_topology(3), basis_gates=IBM_BASIS, directed=True,
                  name="directed_line_3")


@pytest.fixture
def disconnected_4():
    """Two islands: 0-1 and 2-3."""
    return Target(n_qubits=4, edges=frozenset({(0, 1), (2, 3)}), basis_gates=IBM_BASIS, name="islands")


# =============================================================================
# Test Circuits
# =============================================================================

@pytest.fixture
def bell_circuit():
    """Bell state: H(0), CX(0,1)."""
    return Circuit(2).h(0).cx(0, 1)


@pytest.fixture
def ghz_circuit():
    """GHZ state: H(0), CX(0,1), CX(1,2)."""
    return Circuit(3).h(0).cx(0, 1).cx(1, 2)
