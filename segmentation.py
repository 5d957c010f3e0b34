from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, linkage
from sklearn.metrics import silhouette_score
from sklearn.preprocessing import StandardScaler

from config import MAX_CLUSTERS
from errors import InsufficientSeriesError
from feature_extraction import FEATURE_COLUMNS


@dataclass(frozen=True)
class ClusterAssignment:
    labels: MappingProxyType
    k: int
    linkage_matrix: np.ndarray = field(repr=False)
    standardized: pd.DataFrame = field(repr=False)
    cluster_names: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    silhouette: float = np.nan

    def __getitem__(self, name):
        return self.labels[name]

    def members(self, cluster_id):
        return [name for name, c in self.labels.items() if c == cluster_id]

    @property
    def cluster_ids(self):
        return sorted(set(self.labels.values()))

    def to_frame(self):
        frame = self.standardized.copy()
        frame['Cluster'] = pd.Series(dict(self.labels))
        frame['Cluster_Nature'] = frame['Cluster'].map(dict(self.cluster_names))
        return frame


class SegmentationEngine:
    def __init__(self, max_clusters=MAX_CLUSTERS, method='average', metric='euclidean', verbose=True):
        self.max_clusters = max_clusters
        self.method = method
        self.metric = metric
        self.verbose = verbose

    def standardize(self, features_df):
        """
        Zero mean, unit sample standard deviation per feature column.
        StandardScaler divides by the population deviation, so rescale by
        sqrt((n - 1) / n) to land on the sample deviation.
        """
        X = features_df[FEATURE_COLUMNS].to_numpy(dtype=float)
        n = X.shape[0]
        X_scaled = StandardScaler().fit_transform(X) * np.sqrt((n - 1) / n)
        return pd.DataFrame(X_scaled, index=features_df.index, columns=FEATURE_COLUMNS)

    def cluster(self, features_by_series, k=None):
        """
        Main entry point.
        Input: DataFrame (index = series name, FEATURE_COLUMNS) or a mapping
        name -> SeriesFeatures.
        Output: ClusterAssignment with ids 1..k.

        Average linkage on Euclidean distances between standardized features,
        tree cut at k = min(max_clusters, n) unless k is given. Rows are sorted
        by name first and ids are numbered by first appearance, so identical
        inputs always give identical output.
        """
        features_df = self._as_frame(features_by_series).sort_index()
        n = len(features_df)
        if n < 2:
            raise InsufficientSeriesError(n)
        if k is None:
            k = min(self.max_clusters, n)
        k = int(min(max(k, 1), n))

        X = self.standardize(features_df)
        Z = linkage(X.to_numpy(), method=self.method, metric=self.metric)
        raw_labels = fcluster(Z, t=k, criterion='maxclust')

        renumber = {}
        for label in raw_labels:
            renumber.setdefault(label, len(renumber) + 1)
        labels = {name: renumber[label] for name, label in zip(X.index, raw_labels)}

        n_found = len(renumber)
        sil = np.nan
        if 2 <= n_found < n:
            sil = float(silhouette_score(X.to_numpy(), [labels[name] for name in X.index]))

        names = self._assign_cluster_names(features_df, labels)
        if self.verbose:
            print(f"Clustered {n} series into {n_found} groups: {labels}")

        return ClusterAssignment(
            labels=MappingProxyType(labels),
            k=n_found,
            linkage_matrix=Z,
            standardized=X,
            cluster_names=MappingProxyType(names),
            silhouette=sil,
        )

    @staticmethod
    def _as_frame(features_by_series):
        if isinstance(features_by_series, pd.DataFrame):
            return features_by_series[FEATURE_COLUMNS].astype(float)
        rows = {name: f.as_dict() for name, f in features_by_series.items()}
        return pd.DataFrame.from_dict(rows, orient='index', columns=FEATURE_COLUMNS).astype(float)

    @staticmethod
    def _assign_cluster_names(features_df, labels):
        """
        Descriptive name per cluster from its raw feature centroid:
        the dominant component wins (Seasonal / Trending / Noisy).
        """
        df = features_df.copy()
        df['Cluster'] = pd.Series(labels)
        centroids = df.groupby('Cluster')[FEATURE_COLUMNS].mean()

        cluster_names = {}
        for cluster_id, row in centroids.iterrows():
            dominant = row.idxmax()
            if dominant == 'seasonal_strength':
                name = "Seasonal"
            elif dominant == 'trend_strength':
                name = "Trending"
            else:
                name = "Noisy"
            cluster_names[int(cluster_id)] = f"{cluster_id}: {name}"
        return cluster_names


if __name__ == "__main__":
    features = pd.DataFrame(
        {'trend_strength': [0.6, 0.55, 0.1, 0.2], 'seasonal_strength': [0.3, 0.35, 0.8, 0.1],
         'random_strength': [0.1, 0.12, 0.15, 0.7]},
        index=['Binders', 'Paper', 'Phones', 'Tables'])
    assignment = SegmentationEngine().cluster(features)
    print(assignment.to_frame())
