import io
import numpy as np
from numpy.testing import assert_equal
import pytest
from seqassim.errors import MatrixIOError
from seqassim.storage import (DenseMatrix, HermitianPackedMatrix, SymmetricMatrix,
                              SymmetricPackedMatrix, TriangularMatrix,
                              TriangularPackedMatrix)


def all_matrices(n):
    rng = np.random.RandomState(0)
    result = [DenseMatrix(n, n + 2), DenseMatrix(n, n + 2, order='F')]
    for order in ['C', 'F']:
        result.append(SymmetricMatrix(n, order=order))
        for lower in [False, True]:
            for cls in [TriangularMatrix, SymmetricPackedMatrix,
                        HermitianPackedMatrix, TriangularPackedMatrix]:
                result.append(cls(n, order=order, lower=lower))
    for M in result:
        M.fill_rand(rng)
        if M.dtype.kind == 'c':
            M *= 1 + 1j
    return result


def test_binary_round_trip(tmp_path):
    for n in [0, 1, 4]:
        for M in all_matrices(n):
            path = tmp_path / "matrix.bin"
            M.write(path)
            other = M.copy()
            other.clear()
            other.read(path)
            assert other.shape == M.shape
            assert_equal(other.to_array(), M.to_array())


def test_binary_format():
    M = SymmetricPackedMatrix(3)
    M.fill()
    stream = io.BytesIO()
    M.write(stream)
    content = stream.getvalue()
    assert len(content) == 8 + 6 * 8
    assert_equal(np.frombuffer(content[:8], dtype=np.int32), [3, 3])
    assert_equal(np.frombuffer(content[8:], dtype=float), np.arange(6))


def test_read_reallocates():
    M = DenseMatrix(2, 5)
    M.fill()
    stream = io.BytesIO()
    M.write(stream)

    other = DenseMatrix(7, 1)
    other.read(io.BytesIO(stream.getvalue()))
    assert other.shape == (2, 5)
    assert_equal(other.to_array(), M.to_array())


def test_read_truncated():
    M = DenseMatrix(3)
    M.fill()
    stream = io.BytesIO()
    M.write(stream)
    content = stream.getvalue()

    other = DenseMatrix(2)
    other.fill(1.0)
    for truncated in [content[:5], content[:-1]]:
        with pytest.raises(MatrixIOError):
            other.read(io.BytesIO(truncated))
        assert other.shape == (2, 2)
        assert_equal(other.to_array(), np.ones((2, 2)))


def test_missing_file(tmp_path):
    M = DenseMatrix()
    with pytest.raises(MatrixIOError) as excinfo:
        M.read(tmp_path / "missing.bin")
    assert excinfo.value.operation == 'read'
    assert excinfo.value.path.endswith("missing.bin")

    with pytest.raises(MatrixIOError):
        M.write(tmp_path / "no_such_dir" / "matrix.bin")


def test_closed_stream():
    stream = io.BytesIO()
    stream.close()
    with pytest.raises(MatrixIOError):
        DenseMatrix(2).write(stream)
    with pytest.raises(MatrixIOError):
        DenseMatrix(2).read(stream)


def test_text_round_trip(tmp_path):
    for M in all_matrices(4):
        path = tmp_path / "matrix.txt"
        M.write_text(path)
        other = M.copy()
        other.clear()
        other.read_text(path)
        assert other.shape == M.shape
        assert_equal(other.to_array(), M.to_array())


def test_text_format():
    M = DenseMatrix(2, 3)
    M.fill()
    assert str(M) == "0.0\t1.0\t2.0\t\n3.0\t4.0\t5.0\t\n"

    stream = io.StringIO()
    M.write_text(stream)
    assert stream.getvalue() == str(M)


def test_read_text_packed_lower():
    text = "1\t2\t4\n2\t3\t5\n4\t5\t6\n"
    for order in ['C', 'F']:
        M = SymmetricPackedMatrix(order=order, lower=True)
        M.read_text(io.StringIO(text))
        assert_equal(M.to_array(), [[1, 2, 4], [2, 3, 5], [4, 5, 6]])

    T = TriangularPackedMatrix(lower=True)
    T.read_text(io.StringIO(text))
    assert_equal(T.to_array(), [[1, 0, 0], [2, 3, 0], [4, 5, 6]])
    assert_equal(T.data, [1, 2, 3, 4, 5, 6])

    T = TriangularPackedMatrix(lower=True, order='F')
    T.read_text(io.StringIO(text))
    assert_equal(T.data, [1, 2, 4, 3, 5, 6])


def test_read_text_errors():
    M = DenseMatrix(2)
    M.fill(1.0)
    with pytest.raises(MatrixIOError):
        M.read_text(io.StringIO("1\t2\n3\n"))
    with pytest.raises(MatrixIOError):
        M.read_text(io.StringIO("1\tx\n"))
    assert_equal(M.to_array(), np.ones((2, 2)))

    S = SymmetricMatrix(2)
    with pytest.raises(MatrixIOError):
        S.read_text(io.StringIO("1\t2\t3\n4\t5\t6\n"))
    assert S.shape == (2, 2)


def test_read_text_empty():
    M = DenseMatrix(3)
    M.read_text(io.StringIO(""))
    assert M.shape == (0, 0)
    assert M.data is None
