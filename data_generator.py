import numpy as np
import pandas as pd

# Sub-category -> (category, base orders per month, yearly growth, seasonal amplitude)
SUBCATEGORY_PROFILES = {
    'Binders':     ('Office Supplies', 22, 0.20, 0.45),
    'Paper':       ('Office Supplies', 20, 0.18, 0.40),
    'Furnishings': ('Furniture',       14, 0.15, 0.35),
    'Phones':      ('Technology',      13, 0.12, 0.30),
    'Storage':     ('Office Supplies', 12, 0.10, 0.30),
    'Art':         ('Office Supplies', 11, 0.10, 0.25),
    'Accessories': ('Technology',      11, 0.14, 0.30),
    'Chairs':      ('Furniture',        9, 0.08, 0.20),
    'Appliances':  ('Office Supplies',  6, 0.05, 0.15),
    'Labels':      ('Office Supplies',  5, 0.05, 0.10),
    'Tables':      ('Furniture',        4, 0.02, 0.10),
    'Copiers':     ('Technology',       1, 0.00, 0.00),
}

STATES = {
    'West': ['California', 'Washington', 'Oregon'],
    'East': ['New York', 'Pennsylvania', 'Ohio'],
    'Central': ['Texas', 'Illinois', 'Michigan'],
    'South': ['Florida', 'Georgia', 'Virginia'],
}

SHIP_MODES = ['Standard Class', 'Second Class', 'First Class', 'Same Day']
SEGMENTS = ['Consumer', 'Corporate', 'Home Office']


def generate_superstore_orders(start='2014-01', end='2017-12', seed=42, profiles=None):
    """
    Generates synthetic superstore order lines in the layout of the public
    superstore spreadsheet (Row ID, Order Date, Sub-Category, Sales, ...).

    Monthly order counts per sub-category follow
        base * (1 + growth)^years * (1 + amplitude * seasonal) + noise
    with a Q4 peak, so the larger sub-categories carry both trend and
    seasonality while the small ones stay noisy.
    """
    rng = np.random.RandomState(seed)
    profiles = SUBCATEGORY_PROFILES if profiles is None else profiles

    months = pd.period_range(start, end, freq='M')
    # peaks in Sep / Nov / Dec like the real store
    seasonal = np.array([-0.6, -0.8, 0.1, -0.2, -0.1, -0.2, -0.2, -0.3, 0.8, -0.1, 0.9, 1.0])

    regions = list(STATES)
    data = []
    order_counter = 1

    for month_idx, month in enumerate(months):
        years = month_idx / 12.0
        for sub_category, (category, base, growth, amplitude) in profiles.items():
            lam = base * (1 + growth) ** years * (1 + amplitude * seasonal[month.month - 1])
            n_orders = rng.poisson(max(lam, 0.0))

            for _ in range(n_orders):
                day = rng.randint(1, month.days_in_month + 1)
                order_date = month.to_timestamp() + pd.Timedelta(days=int(day) - 1)
                ship_date = order_date + pd.Timedelta(days=int(rng.randint(0, 8)))
                region = regions[rng.randint(len(regions))]

                quantity = int(rng.randint(1, 15))
                unit_price = float(rng.lognormal(3.0, 1.0))
                discount = float(rng.choice([0.0, 0.0, 0.0, 0.1, 0.2, 0.3, 0.5, 0.8]))
                sales = round(unit_price * quantity * (1 - discount), 4)
                margin = rng.normal(0.15, 0.2) - discount
                profit = round(sales * margin, 4)

                data.append({
                    'Row ID': len(data) + 1,
                    'Order ID': f'US-{order_date.year}-{order_counter:06d}',
                    # month-first strings like the spreadsheet export
                    'Order Date': f'{order_date.month}/{order_date.day}/{order_date.year}',
                    'Ship Date': f'{ship_date.month}/{ship_date.day}/{ship_date.year}',
                    'Ship Mode': SHIP_MODES[rng.randint(len(SHIP_MODES))],
                    'Customer ID': f'CU-{rng.randint(1, 800):05d}',
                    'Segment': SEGMENTS[rng.randint(len(SEGMENTS))],
                    'Country': 'United States',
                    'State': STATES[region][rng.randint(3)],
                    'Region': region,
                    'Product ID': f'{category[:3].upper()}-{sub_category[:2].upper()}-{rng.randint(1000, 1100)}',
                    'Category': category,
                    'Sub-Category': sub_category,
                    'Product Name': f'{sub_category} item {rng.randint(1, 60)}',
                    'Sales': sales,
                    'Quantity': quantity,
                    'Discount': discount,
                    'Profit': profit,
                })
                order_counter += 1

    return pd.DataFrame(data)


if __name__ == "__main__":
    print("Generating synthetic superstore orders...")
    df = generate_superstore_orders()
    print(f"Generated {len(df)} order lines for {df['Sub-Category'].nunique()} sub-categories.")
    print("Sample:\n", df.head())
    print("\nOrders per sub-category:")
    print(df['Sub-Category'].value_counts())
    df.to_csv("synthetic_superstore_orders.csv", index=False)
    print("\nSaved to synthetic_superstore_orders.csv")
