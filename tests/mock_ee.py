class MockEE(object):
    """
    Mock Earth Engine Module.
    Patched in place of 'ee' inside the modules under test (utils, satellites.sentinel2).

    Args:
        features (list): features returned by FeatureCollection(...).getInfo()
        ndvi_mean (float): value returned by reduceRegion(...) for the 'NDVI' band
        initialize_error (Exception): raised by Initialize() when set
    """

    def __init__(self, features=None, ndvi_mean=0.42, initialize_error=None):
        self.features = features or []
        self.ndvi_mean = ndvi_mean
        self.initialize_error = initialize_error
        self.initialize_calls = []
        self.collections = []

    def __getattr__(self, name):
        # Return specific mock classes if available, else MockEEObject
        if name == "Geometry":
            return Geometry
        if name == "Filter":
            return Filter
        if name == "Date":
            return Date
        if name == "Reducer":
            return Reducer
        return MockEEObject

    def Initialize(self, *args, **kwargs):
        self.initialize_calls.append(kwargs)
        if self.initialize_error is not None:
            raise self.initialize_error

    def ImageCollection(self, asset_id):
        collection = ImageCollection(asset_id, ee=self)
        self.collections.append(collection)
        return collection

    def Feature(self, geometry, properties):
        return MockEEObject(properties)

    def FeatureCollection(self, collection):
        features = [
            {"type": "Feature", "geometry": None, "properties": properties}
            for properties in self.features
        ]
        return MockEEObject({"type": "FeatureCollection", "features": features})


class MockEEObject:
    """Base class for all mock EE objects."""

    def __init__(self, value=None, *args, **kwargs):
        self._value = value
        self._ee = kwargs.get("ee")

    def getInfo(self):
        """Mock getInfo returning dummy data or stored value."""
        if self._value is not None:
            return self._value
        return {"type": "MockObject", "data": "dummy"}

    def get(self, key):
        if isinstance(self._value, dict):
            return MockEEObject(self._value.get(key))
        return MockEEObject()

    def select(self, *args):
        return self

    def rename(self, name):
        return self

    def addBands(self, *args):
        return self

    def normalizedDifference(self, bands):
        return self

    def median(self):
        return Image(ee=self._ee)

    def reduceRegion(self, **kwargs):
        ndvi_mean = self._ee.ndvi_mean if self._ee is not None else None
        return MockEEObject({"NDVI": ndvi_mean})

    def format(self, pattern):
        return self

    def set(self, key, val):
        return self


class Image(MockEEObject):
    pass


class ImageCollection(MockEEObject):
    def __init__(self, asset_id, ee=None):
        super().__init__(asset_id, ee=ee)
        self.asset_id = asset_id
        self.filters = []
        self.date_range = None

    def filterBounds(self, geometry):
        return self

    def filterDate(self, start, end):
        self.date_range = (start, end)
        return self

    def filter(self, flt):
        self.filters.append(flt)
        return self

    def map(self, func):
        """Mock map: applies func to one image so the mapped function is exercised."""
        func(Image(ee=self._ee))
        return self


class Geometry(MockEEObject):
    class Polygon(MockEEObject):
        pass


class Filter(MockEEObject):
    @staticmethod
    def lt(name, val):
        return Filter(("lt", name, val))


class Date(MockEEObject):
    pass


class Reducer(MockEEObject):
    @staticmethod
    def mean():
        return Reducer("mean")
