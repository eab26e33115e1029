import ee
import config
from utils import retrieve_sensor_data, to_geometry, ndvi


def get_sentinel2_data(aoi, start_date, end_date, cloud_max=config.CLOUD_THRESH):
    """Sentinel-2 surface reflectance scenes over the AOI, filtered by scene cloud percentage."""
    return retrieve_sensor_data(config.S2_COLLECTION, to_geometry(aoi), start_date, end_date, cloud_max=cloud_max)


def get_ndvi_mean(aoi, start_date, end_date, cloud_max=config.CLOUD_THRESH):
    """
    Mean NDVI over the AOI of the median NDVI composite of the period.

    Returns:
        float | None: None when no clear pixel was available.
    """
    geometry = to_geometry(aoi)
    collection = retrieve_sensor_data(config.S2_COLLECTION, geometry, start_date, end_date, cloud_max=cloud_max)

    composite = collection.map(ndvi).select('NDVI').median()
    stats = composite.reduceRegion(
        reducer=ee.Reducer.mean(),
        geometry=geometry,
        scale=config.SAMPLING_SCALE,
        maxPixels=config.MAX_PIXELS,
    ).getInfo()

    return stats.get('NDVI')


def get_ndvi_timeseries(aoi, start_date, end_date, cloud_max=config.CLOUD_THRESH):
    """
    One AOI-mean NDVI value per Sentinel-2 acquisition.

    Acquisitions whose pixels were all masked come back with a null value;
    they are kept so the series normalizer can report them as excluded.

    Returns:
        list[dict]: raw samples [{'date': 'YYYY-MM-DD', 'value': float | None}, ...]
                    in provider order.
    """
    geometry = to_geometry(aoi)
    collection = retrieve_sensor_data(config.S2_COLLECTION, geometry, start_date, end_date, cloud_max=cloud_max)

    def acquisition_mean(image):
        stats = ndvi(image).select('NDVI').reduceRegion(
            reducer=ee.Reducer.mean(),
            geometry=geometry,
            scale=config.SAMPLING_SCALE,
            maxPixels=config.MAX_PIXELS,
        )
        return ee.Feature(None, {
            'ndvi_mean': stats.get('NDVI'),
            'date': ee.Date(image.get('system:time_start')).format('YYYY-MM-dd'),
        })

    results = ee.FeatureCollection(collection.map(acquisition_mean)).getInfo()

    samples = []
    for feature in results.get('features', []):
        properties = feature.get('properties', {})
        samples.append({'date': properties.get('date'), 'value': properties.get('ndvi_mean')})

    print(f"[GEE] {len(samples)} Sentinel-2 acquisitions between {start_date} and {end_date}")
    return samples
