"""Unit tests for data acquisition; no R installation is needed."""

import sys

import pytest
import pandas as pd
import numpy as np
from vglut3_report.config import StudyQuery
from vglut3_report.recount import (
    AcquisitionError,
    Recount3Client,
    compute_read_counts,
    load_local,
)
from vglut3_report.validation import ValidationError


class TestComputeReadCounts:
    """Tests for coverage to count conversion."""

    def test_divides_by_read_length(self):
        coverage = pd.DataFrame({'s1': [200, 0, 1049], 's2': [300, 150, 0]}, index=['a', 'b', 'c'])
        lengths = pd.Series({'s1': 100.0, 's2': 150.0})

        counts = compute_read_counts(coverage, lengths)

        assert counts.dtypes.unique().tolist() == [np.dtype('int64')]
        assert counts['s1'].tolist() == [2, 0, 10]
        assert counts['s2'].tolist() == [2, 1, 0]

    def test_unrounded(self):
        coverage = pd.DataFrame({'s1': [150]})

        counts = compute_read_counts(coverage, pd.Series({'s1': 100.0}), round_counts=False)

        assert counts.iloc[0, 0] == pytest.approx(1.5)

    def test_bad_length(self):
        coverage = pd.DataFrame({'s1': [100], 's2': [100], 's3': [100]})
        lengths = pd.Series({'s1': 100.0, 's2': 0.0})

        with pytest.raises(ValidationError, match='s2, s3'):
            compute_read_counts(coverage, lengths)


class TestLoadLocal:
    """Tests for reading a data set from delimited files."""

    def test_round_trip(self, raw_set, local_tables):
        es = load_local(local_tables['counts'], local_tables['samples'], local_tables['genes'])

        assert es.shape == raw_set.shape
        np.testing.assert_array_equal(es.counts.to_numpy(), raw_set.counts.to_numpy())
        assert list(es.samples.index) == list(raw_set.samples.index)
        assert es.genes['gene_name'].iloc[0] == 'Gene0'

    def test_coverage_conversion(self, raw_set, tmp_path, table_writer):
        coverage = raw_set.counts * 100
        paths = table_writer(raw_set, tmp_path)
        coverage.to_csv(paths['counts'], sep='\t')

        es = load_local(
            paths['counts'], paths['samples'],
            avg_mapped_read_length_field='recount_qc.star.average_mapped_length'
        )

        np.testing.assert_array_equal(es.counts.to_numpy(), raw_set.counts.to_numpy())

    def test_invalid_counts(self, raw_set, tmp_path, table_writer):
        paths = table_writer(raw_set, tmp_path)
        broken = raw_set.counts.copy()
        broken.iloc[0, 0] = -1
        broken.to_csv(paths['counts'], sep='\t')

        with pytest.raises(ValidationError, match='negative'):
            load_local(paths['counts'], paths['samples'])


class TestRecount3Client:
    """Failure modes reported before or instead of any download."""

    def test_missing_rpy2(self, monkeypatch):
        monkeypatch.setitem(sys.modules, 'rpy2.robjects', None)

        with pytest.raises(AcquisitionError, match='rpy2'):
            Recount3Client()

    def test_no_project(self):
        client = object.__new__(Recount3Client)

        with pytest.raises(AcquisitionError, match='No recount3 project'):
            client.fetch(StudyQuery())

    def test_unknown_project(self):
        client = object.__new__(Recount3Client)
        projects = pd.DataFrame({
            'project': ['SRP000001'],
            'project_home': ['data_sources/sra'],
        })
        client.available_projects = lambda organism: (None, projects)

        with pytest.raises(AcquisitionError, match='Unknown study'):
            client.fetch(StudyQuery(project='SRP999999'))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
