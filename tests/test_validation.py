"""Unit tests for validation module."""

import gzip

import pytest
import pandas as pd
import numpy as np
from vglut3_report.validation import (
    validate_count_matrix,
    read_count_matrix,
    read_metadata,
    ValidationError
)


@pytest.fixture
def valid_counts():
    """Create valid count matrix."""
    np.random.seed(42)
    return pd.DataFrame(
        np.random.poisson(100, (1000, 6)),
        index=[f"Gene_{i}" for i in range(1000)],
        columns=[f"Sample_{i}" for i in range(6)]
    )


@pytest.fixture
def valid_metadata():
    """Create valid metadata."""
    return pd.DataFrame({
        'genotype': ['wildtype'] * 3 + ['Vglut3-/-'] * 3,
        'age': ['P8', 'P30'] * 3
    }, index=[f"Sample_{i}" for i in range(6)])


class TestCountMatrixValidation:
    """Tests for count matrix validation."""

    def test_valid_count_matrix(self, valid_counts):
        """Test validation of valid count matrix."""
        result = validate_count_matrix(valid_counts)

        assert result.valid
        assert len(result.errors) == 0
        assert result.summary['n_genes'] == 1000
        assert result.summary['n_samples'] == 6

    def test_negative_counts(self, valid_counts):
        """Test detection of negative counts."""
        invalid_counts = valid_counts.copy()
        invalid_counts.iloc[0, 0] = -5

        result = validate_count_matrix(invalid_counts)

        assert not result.valid
        assert any('negative' in err.lower() for err in result.errors)

    def test_missing_values(self, valid_counts):
        """Test detection of missing values."""
        invalid_counts = valid_counts.copy().astype(float)
        invalid_counts.iloc[0, 0] = np.nan

        result = validate_count_matrix(invalid_counts)

        assert not result.valid
        assert any('missing' in err.lower() for err in result.errors)

    def test_non_integer_values(self, valid_counts):
        """Test detection of non-integer values."""
        invalid_counts = valid_counts.copy().astype(float)
        invalid_counts.iloc[0, 0] = 10.5

        result = validate_count_matrix(invalid_counts)

        assert result.valid  # Should still be valid but with warning
        assert any('non-integer' in w.message.lower() for w in result.warnings)

    def test_duplicate_gene_ids(self, valid_counts):
        """Test detection of duplicate gene IDs."""
        invalid_counts = valid_counts.copy()
        invalid_counts.index = ['Gene_0'] * len(invalid_counts)

        result = validate_count_matrix(invalid_counts)

        assert not result.valid
        assert any('duplicate' in err.lower() for err in result.errors)

    def test_non_numeric_column(self, valid_counts):
        """Test error for a text column in the matrix."""
        invalid_counts = valid_counts.copy()
        invalid_counts['Sample_0'] = 'x'

        result = validate_count_matrix(invalid_counts)

        assert not result.valid
        assert any('non-numeric' in err.lower() for err in result.errors)

    def test_empty_sample_warning(self, valid_counts):
        """Test warning for a sample without reads."""
        counts = valid_counts.copy()
        counts.iloc[:, 0] = 0

        result = validate_count_matrix(counts)

        assert result.valid
        assert any('no reads' in w.message.lower() for w in result.warnings)

    def test_empty_matrix(self):
        """Test error for an empty matrix."""
        result = validate_count_matrix(pd.DataFrame())

        assert not result.valid

    def test_raise_for_errors(self, valid_counts):
        """Test that errors are raised together."""
        invalid_counts = valid_counts.copy()
        invalid_counts.iloc[0, 0] = -5
        invalid_counts.index = ['Gene_0'] * len(invalid_counts)

        with pytest.raises(ValidationError, match='negative.*duplicate'):
            validate_count_matrix(invalid_counts).raise_for_errors()

        validate_count_matrix(valid_counts).raise_for_errors()


class TestFileReading:
    """Tests for file reading functions."""

    def test_read_csv(self, tmp_path, valid_counts):
        """Test reading CSV file."""
        filepath = tmp_path / "counts.csv"
        valid_counts.to_csv(filepath)

        df = read_count_matrix(filepath)

        assert df.shape == valid_counts.shape
        assert list(df.columns) == list(valid_counts.columns)

    def test_read_tsv(self, tmp_path, valid_counts):
        """Test reading TSV file."""
        filepath = tmp_path / "counts.tsv"
        valid_counts.to_csv(filepath, sep='\t')

        df = read_count_matrix(filepath)

        assert df.shape == valid_counts.shape

    def test_read_gzipped_with_header_lines(self, tmp_path, valid_counts):
        """Test reading a gzipped recount3-style file with ## header lines."""
        plain = tmp_path / "plain.tsv"
        valid_counts.to_csv(plain, sep='\t')
        filepath = tmp_path / "counts.tsv.gz"
        with gzip.open(filepath, 'wt') as f:
            f.write("##annotation=gencode_v23\n##date=2021-01-01\n")
            f.write(plain.read_text())

        df = read_count_matrix(filepath, delimiter='\t')

        assert df.shape == valid_counts.shape
        assert df.index[0] == 'Gene_0'

    def test_read_metadata(self, tmp_path, valid_metadata):
        """Test reading a sample table."""
        filepath = tmp_path / "samples.csv"
        valid_metadata.to_csv(filepath)

        df = read_metadata(filepath)

        assert list(df.index) == list(valid_metadata.index)
        assert list(df.columns) == ['genotype', 'age']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
